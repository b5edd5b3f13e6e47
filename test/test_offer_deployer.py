"""
Tests for the on-chain deployer, with web3 mocked out
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from hexbytes import HexBytes

from offer_deployer import NEW_CLONE_TOPIC, ChainOfferDeployer, load_offer_file
from privateoffer import PermitDomain, StateStore
from privateoffer.config import OfferConfig
from privateoffer.services import PermitVerifier, address_oracle

from conftest import CURRENCY_ADDRESS, FACTORY_ADDRESS, NOW, TEMPLATE_ADDRESS, make_account

CLONE = "0x" + "c1" * 20


@pytest.fixture
def w3():
    return MagicMock()


@pytest.fixture
def deployer(w3, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = OfferConfig(
        chain_id=31337,
        factory_address=FACTORY_ADDRESS,
        template_address=TEMPLATE_ADDRESS,
        private_key=make_account(8).key,
    )
    return ChainOfferDeployer(config, w3=w3)


def _contract(w3):
    return w3.eth.contract.return_value


def _clone_log(data):
    return {'topics': [NEW_CLONE_TOPIC], 'data': data}


def test_extract_clone_address_from_hex_data(deployer):
    receipt = {'logs': [
        {'topics': [HexBytes(b"\x01" * 32)], 'data': '0x'},
        _clone_log('0x' + '00' * 12 + 'c1' * 20),
    ]}
    assert deployer._extract_clone_address(receipt).lower() == CLONE


def test_extract_clone_address_from_bytes_data(deployer):
    receipt = {'logs': [_clone_log(HexBytes(b"\x00" * 12 + bytes.fromhex('c1' * 20)))]}
    assert deployer._extract_clone_address(receipt).lower() == CLONE


def test_extract_clone_address_missing(deployer):
    assert deployer._extract_clone_address({'logs': []}) is None


def test_check_prediction(deployer, w3, salt, fixed_args):
    local = address_oracle.predict(FACTORY_ADDRESS, TEMPLATE_ADDRESS, salt, fixed_args)
    predict_call = _contract(w3).functions.predictCloneAddress.return_value.call

    predict_call.return_value = local.lower()
    assert deployer.check_prediction(salt, fixed_args) is True

    predict_call.return_value = CLONE
    assert deployer.check_prediction(salt, fixed_args) is False


def test_sign_currency_permit_recovers_to_payer(deployer, w3, investor):
    functions = _contract(w3).functions
    functions.nonces.return_value.call.return_value = 3
    functions.name.return_value.call.return_value = "Fake Payment Token"

    signed = deployer.sign_currency_permit(CURRENCY_ADDRESS, investor.key, CLONE, 35, NOW + 60)

    permit = signed['permit']
    assert permit.owner == investor.address
    assert permit.nonce == 3
    assert signed['v'] in (27, 28)

    verifier = PermitVerifier(StateStore(), PermitDomain("Fake Payment Token", 31337, CURRENCY_ADDRESS))
    signature = signed['r'] + signed['s'] + bytes([signed['v']])
    assert verifier.recover_signer(permit, signature) == investor.address


def test_send_signs_with_sequential_nonces(deployer, w3):
    w3.eth.get_block.return_value = {'baseFeePerGas': 10}
    w3.to_wei.return_value = 1
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.send_raw_transaction.return_value = HexBytes(b"\xab" * 32)
    w3.eth.wait_for_transaction_receipt.return_value = {'status': 1, 'logs': []}
    deployer.account = MagicMock()
    deployer.account.sign_transaction.return_value.raw_transaction = b"raw"

    function_call = MagicMock()
    deployer._send(function_call)
    deployer._send(function_call)

    sent = [c.args[0] for c in function_call.build_transaction.call_args_list]
    assert [tx['nonce'] for tx in sent] == [7, 8]
    assert sent[0]['maxFeePerGas'] == 13
    assert sent[0]['chainId'] == 31337
    w3.eth.send_raw_transaction.assert_called_with(b"raw")


def test_send_raises_on_revert(deployer, w3):
    w3.eth.get_block.return_value = {'baseFeePerGas': 10}
    w3.to_wei.return_value = 1
    w3.eth.get_transaction_count.return_value = 0
    w3.eth.send_raw_transaction.return_value = HexBytes(b"\xab" * 32)
    w3.eth.wait_for_transaction_receipt.return_value = {'status': 0, 'logs': []}
    deployer.account = MagicMock()

    with pytest.raises(RuntimeError):
        deployer._send(MagicMock())


def test_create_returns_clone_from_receipt(deployer, salt, fixed_args, variable_args):
    receipt = {'status': 1, 'logs': [_clone_log('0x' + '00' * 12 + 'c1' * 20)]}
    with patch.object(deployer, '_send', return_value=receipt) as send:
        clone = deployer.create_private_offer_clone(salt, fixed_args, variable_args)
    assert clone.lower() == CLONE
    send.assert_called_once()


def test_run_private_offer(deployer, w3, salt, fixed_args, variable_args, investor):
    _contract(w3).functions.decimals.return_value.call.return_value = 0
    signed = {'permit': None, 'v': 27, 'r': b"", 's': b""}

    with patch.object(deployer, 'predict_clone_address', return_value=CLONE), \
            patch.object(deployer, 'check_prediction', return_value=True), \
            patch.object(deployer, 'increase_minting_allowance') as increase, \
            patch.object(deployer, 'sign_currency_permit', return_value=signed) as sign, \
            patch.object(deployer, 'submit_permit') as submit, \
            patch.object(deployer, 'create_private_offer_clone', return_value=CLONE):
        clone = deployer.run_private_offer(salt, fixed_args, variable_args, investor.key, NOW + 60)

    assert clone == CLONE
    increase.assert_called_once_with(fixed_args.token, CLONE, 5)
    sign.assert_called_once_with(fixed_args.currency, investor.key, CLONE, 35, NOW + 60)
    submit.assert_called_once_with(fixed_args.currency, signed)


def test_run_private_offer_stops_on_prediction_mismatch(deployer, salt, fixed_args, variable_args, investor):
    with patch.object(deployer, 'predict_clone_address', return_value=CLONE), \
            patch.object(deployer, 'check_prediction', return_value=False), \
            patch.object(deployer, 'create_private_offer_clone') as create:
        with pytest.raises(ValueError):
            deployer.run_private_offer(salt, fixed_args, variable_args, investor.key, NOW + 60)
    create.assert_not_called()


def test_load_offer_file(tmp_path, salt, fixed_args, variable_args):
    path = tmp_path / "offer.json"
    path.write_text(json.dumps({
        'salt': '0x' + salt.hex(),
        'fixed_args': {
            'currency_receiver': fixed_args.currency_receiver,
            'token_holder': fixed_args.token_holder,
            'min_token_amount': 5,
            'max_token_amount': 5,
            'token_price': 7,
            'expiration': fixed_args.expiration,
            'currency': fixed_args.currency,
            'token': fixed_args.token,
        },
        'variable_args': {
            'currency_payer': variable_args.currency_payer,
            'token_receiver': variable_args.token_receiver,
            'token_amount': 5,
        },
    }))

    loaded_salt, loaded_fixed, loaded_variable, deadline = load_offer_file(str(path))

    assert loaded_salt == '0x' + salt.hex()
    assert loaded_fixed == fixed_args
    assert loaded_variable == variable_args
    assert deadline == fixed_args.expiration
