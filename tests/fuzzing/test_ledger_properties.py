"""
Hypothesis property tests for the movement ledger.

Random movement sequences are applied through the coordinator and checked
against a plain integer model of the balance:

- the materialized balance always equals the model and never goes negative;
- the ledger sum (oracle) agrees with the materialized balance;
- versions number the successful movements 1..n;
- refused movements leave no trace.

Each example writes under its own product code, because function-scoped
fixtures (and the database) are shared across the examples of one test.
"""

import random
from datetime import date
from itertools import count

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from inventory_kernel.domain.validation import PRODUCT_CODE_PATTERN
from inventory_kernel.domain.values import BalanceKey
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InventoryValidationError,
    UnknownProductError,
)
from inventory_kernel.selectors.balance_selector import BalanceSelector

_codes = count(1)

FUZZ_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)

movements = st.lists(
    st.tuples(st.sampled_from(["IN", "OUT"]), st.integers(min_value=1, max_value=50)),
    min_size=1,
    max_size=15,
)

lots = st.one_of(st.none(), st.from_regex(r"[A-Z]{1,3}-[0-9]{1,4}", fullmatch=True))
expirations = st.one_of(st.none(), st.dates().map(lambda d: d.isoformat()))


@pytest.fixture
def fresh_code(product_directory):
    def _fresh() -> str:
        code = f"FZ{next(_codes)}"
        product_directory.add(code)
        return code

    return _fresh


@FUZZ_SETTINGS
@given(sequence=movements, lot=lots, expiration=expirations)
def test_balance_matches_model(coordinator, ledger_selector, fresh_code, sequence, lot, expiration):
    code = fresh_code()
    model = 0
    applied = 0

    for direction, qty in sequence:
        try:
            movement = coordinator.submit(code, direction, qty, lot, expiration)
        except InsufficientStockError as exc:
            assert direction == "OUT"
            assert qty > model
            assert exc.available == model
            continue
        model += qty if direction == "IN" else -qty
        applied += 1
        assert movement.balance_after == model
        assert movement.balance_version == applied
        assert model >= 0

    key = BalanceKey(code, lot, None if expiration is None else date.fromisoformat(expiration))
    records = ledger_selector.movements_for_key(key)
    assert [r.balance_version for r in records] == list(range(1, applied + 1))
    assert ledger_selector.computed_balance(key) == model


@FUZZ_SETTINGS
@given(deltas=st.lists(st.integers(min_value=-30, max_value=30).filter(bool), min_size=1, max_size=12))
def test_adjustments_never_go_negative(coordinator, session, fresh_code, deltas):
    code = fresh_code()
    model = 0
    for delta in deltas:
        if model + delta < 0:
            with pytest.raises(InsufficientStockError):
                coordinator.adjust(code, delta)
            continue
        movement = coordinator.adjust(code, delta)
        model += delta
        assert movement.balance_after == model

    assert BalanceSelector(session).available_quantity(code) == model


@FUZZ_SETTINGS
@given(product_code=st.text(max_size=60), quantity=st.integers(min_value=-5, max_value=5))
def test_guard_never_reaches_storage_with_bad_input(coordinator, ledger_selector, product_code, quantity):
    valid_code = bool(PRODUCT_CODE_PATTERN.fullmatch(product_code)) and len(product_code) <= 50
    before = ledger_selector.list_movements().total

    try:
        coordinator.receive(product_code, quantity)
    except InventoryValidationError:
        assert not valid_code or quantity < 1
    except UnknownProductError:
        assert valid_code and quantity >= 1
    else:
        # Only the known fixture products can be written
        assert valid_code and quantity >= 1
        before += 1

    assert ledger_selector.list_movements().total == before


def test_reconcile_after_fuzzing_is_clean(coordinator, ledger_selector, fresh_code):
    """Deterministic companion: many keys, then one global reconcile."""
    rng = random.Random(42)
    codes = [fresh_code() for _ in range(5)]
    for _ in range(60):
        code = rng.choice(codes)
        try:
            if rng.random() < 0.6:
                coordinator.receive(code, rng.randint(1, 10))
            else:
                coordinator.issue(code, rng.randint(1, 10))
        except InsufficientStockError:
            pass

    assert ledger_selector.reconcile() == []
