"""
Shared fixtures: a fresh state store with a trusted payment currency, a
security token with a mint allower, and a clone factory that knows both.
"""

import pytest
from eth_account import Account
from eth_hash.auto import keccak

from privateoffer import (
    MINTALLOWER_ROLE,
    TRUSTED_CURRENCY,
    ZERO_ADDRESS,
    AllowList,
    FixedArgs,
    PaymentToken,
    Permit,
    PrivateOfferCloneFactory,
    SecurityToken,
    StateStore,
    VariableArgs,
    sign_permit,
)

NOW = 1_700_000_000
CHAIN_ID = 31337

FACTORY_ADDRESS = "0x" + "fa" * 20
TEMPLATE_ADDRESS = "0x" + "ab" * 20
CURRENCY_ADDRESS = "0x" + "cc" * 20
TOKEN_ADDRESS = "0x" + "dd" * 20
ALLOW_LIST_ADDRESS = "0x" + "a1" * 20


class Clock:
    """Settable time source shared by the factory and the permit verifier"""

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def make_account(index):
    return Account.from_key("0x" + f"{index:064x}")


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def company_admin():
    return make_account(1)


@pytest.fixture
def investor():
    return make_account(2)


@pytest.fixture
def mint_allower():
    return make_account(3)


@pytest.fixture
def platform_admin():
    return make_account(4)


@pytest.fixture
def hot_wallet():
    return make_account(5)


@pytest.fixture
def cold_wallet():
    return make_account(6)


@pytest.fixture
def fee_collector():
    return make_account(7)


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def allow_list(store, platform_admin):
    allow_list = AllowList(store, ALLOW_LIST_ADDRESS, platform_admin.address)
    allow_list.set(platform_admin.address, CURRENCY_ADDRESS, TRUSTED_CURRENCY)
    return allow_list


@pytest.fixture
def currency(store, clock, investor):
    currency = PaymentToken(store, CURRENCY_ADDRESS, "Fake Payment Token", "FPT",
                            decimals=6, chain_id=CHAIN_ID, clock=clock)
    currency.mint(investor.address, 1000)
    return currency


@pytest.fixture
def token(store, company_admin, mint_allower, allow_list):
    token = SecurityToken(store, TOKEN_ADDRESS, "TestToken", "TEST", admin=company_admin.address,
                          allow_list=allow_list, decimals=0)
    token.grant_role(company_admin.address, MINTALLOWER_ROLE, mint_allower.address)
    return token


@pytest.fixture
def factory(store, clock, currency, token):
    factory = PrivateOfferCloneFactory(store, FACTORY_ADDRESS, TEMPLATE_ADDRESS, clock=clock)
    factory.register_token(currency)
    factory.register_token(token)
    return factory


@pytest.fixture
def salt():
    return keccak(b"random number")


@pytest.fixture
def fixed_args(company_admin):
    return FixedArgs(
        currency_receiver=company_admin.address,
        token_holder=ZERO_ADDRESS,
        min_token_amount=5,
        max_token_amount=5,
        token_price=7,
        expiration=NOW + 30 * 24 * 60 * 60,
        currency=CURRENCY_ADDRESS,
        token=TOKEN_ADDRESS,
    )


@pytest.fixture
def variable_args(investor, cold_wallet):
    return VariableArgs(
        currency_payer=investor.address,
        token_receiver=cold_wallet.address,
        token_amount=5,
    )


@pytest.fixture
def predicted(factory, salt, fixed_args):
    return factory.predict_clone_address(salt, fixed_args)


@pytest.fixture
def make_permit(currency, investor, predicted):
    """Build and sign a permit from the investor to the predicted clone"""
    def _make(value=35, deadline=NOW + 3600, nonce=None, spender=None, signer=None):
        permit = Permit(
            owner=investor.address,
            spender=spender or predicted,
            value=value,
            nonce=currency.nonces(investor.address) if nonce is None else nonce,
            deadline=deadline,
        )
        return permit, sign_permit(currency.domain, permit, (signer or investor).key)
    return _make
