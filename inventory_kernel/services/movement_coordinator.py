"""
MovementCoordinator -- the single write path for stock movements.

Responsibility:
    Turns a movement request into exactly one committed Movement and the
    matching balance write, or into a typed failure with no writes at all.

Architecture position:
    Kernel > Services -- imperative shell.  Owns the transaction boundary:
    it opens one session per attempt from the injected session factory and
    commits or rolls back; the stores it drives only flush.

Algorithm (per request):
    1. Pre-flight guard (domain/validation.py), before any storage access.
    2. Product existence check through the ProductDirectory.
    3. Per attempt, in one transaction:
         a. replay check for the idempotency key, if any;
         b. read the balance (optionally FOR UPDATE);
         c. plan the transition (``receive`` / ``issue``); an oversell
            raises InsufficientStockError and nothing is written;
         d. version-conditioned balance write; on a lost race the attempt
            is rolled back and retried;
         e. append the movement (and idempotency record);
         f. deadline check, then commit.
    4. Transient storage errors are retried like lost races, unless the
       attempt already ran past the transaction timeout (a SQLite writer
       that waited out its busy timeout, for example): that is fatal.  After
       ``max_attempts`` the request fails with ConcurrencyConflictError.

Invariants enforced:
    - Non-negative balance, ledger agreement and version monotonicity are
      maintained because the balance write and the movement insert commit
      together or not at all, and the write only lands on the version it
      was computed from.
    - Mutations of one key are linearized by the database (version CAS or
      row lock), never by a process-level lock.

Failure modes:
    - InvalidQuantityError / InvalidDateError / InventoryValidationError
    - UnknownProductError
    - InsufficientStockError
    - IdempotencyKeyReusedError
    - ConcurrencyConflictError after the retry budget is spent
    - TransactionTimeoutError (not retried)
    - StorageError for non-transient database failures (not retried)
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from inventory_kernel.db.errors import is_timeout_error, is_transient_error, is_unique_violation
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.product_directory import ProductDirectory
from inventory_kernel.domain.transitions import plan_transition
from inventory_kernel.domain.validation import (
    INVALID_QUANTITY,
    FieldError,
    require_valid_movement,
)
from inventory_kernel.domain.values import BalanceState, MovementDirection, MovementRequest
from inventory_kernel.exceptions import (
    ConcurrencyConflictError,
    IdempotencyKeyReusedError,
    InsufficientStockError,
    InvalidQuantityError,
    StorageError,
    TransactionTimeoutError,
    UnknownProductError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.movement import Movement
from inventory_kernel.services.balance_store import BalanceStore
from inventory_kernel.services.ledger_store import LedgerStore

logger = get_logger("services.movement_coordinator")

LOCK_MODE_OPTIMISTIC = "optimistic"
LOCK_MODE_PESSIMISTIC = "pessimistic"
LOCK_MODES = (LOCK_MODE_OPTIMISTIC, LOCK_MODE_PESSIMISTIC)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounds on how hard the coordinator tries.

    ``backoff_seconds`` grows linearly with the attempt number, is capped at
    ``max_backoff_seconds``, and gets up to 100% random jitter so that
    colliding writers spread out.
    """

    max_attempts: int = 5
    backoff_seconds: float = 0.02
    max_backoff_seconds: float = 0.5
    transaction_timeout_seconds: float = 10.0
    lock_mode: str = LOCK_MODE_OPTIMISTIC

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.backoff_seconds < 0 or self.max_backoff_seconds < 0:
            raise ValueError("backoff must not be negative")
        if self.transaction_timeout_seconds <= 0:
            raise ValueError(
                f"transaction_timeout_seconds must be > 0, got {self.transaction_timeout_seconds}"
            )
        if self.lock_mode not in LOCK_MODES:
            raise ValueError(f"lock_mode must be one of {LOCK_MODES}, got {self.lock_mode!r}")

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        base = min(self.backoff_seconds * attempt, self.max_backoff_seconds)
        return base + random.uniform(0, base)


class _LostRace(Exception):
    """The balance moved between our read and our write."""


class MovementCoordinator:
    """
    Transaction coordinator for stock movements.

    Contract:
        ``submit`` returns the committed Movement (detached from any
        session) or raises one of the typed errors listed in the module
        docstring.  Either way, a failed request leaves the ledger and the
        balances exactly as they were.

    Guarantees:
        - At most one movement per idempotency key.
        - Concurrent OUT requests never oversell: each one is planned
          against the balance version it writes over.

    Non-goals:
        - Does NOT own product data; existence comes from the directory.
        - Does NOT serialize in process memory; two coordinators in two
          processes against one database behave the same as one.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        product_directory: ProductDirectory,
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._products = product_directory
        self._clock = clock or SystemClock()
        self._policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._monotonic = monotonic

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def submit(
        self,
        product_code: str,
        direction: MovementDirection | str,
        quantity: int,
        lot_number: str | None = None,
        expiration_date: date | str | None = None,
        note: str | None = None,
        *,
        idempotency_key: str | None = None,
        actor_id: str | None = None,
    ) -> Movement:
        """Record one movement and update its balance atomically."""
        request = require_valid_movement(
            product_code,
            direction,
            quantity,
            lot_number=lot_number,
            expiration_date=expiration_date,
            note=note,
            idempotency_key=idempotency_key,
            actor_id=actor_id,
        )

        with LogContext.bind(
            product_code=request.product_code,
            actor_id=request.actor_id,
            idempotency_key=request.idempotency_key,
        ):
            if not self._products.product_exists(request.product_code):
                logger.info("unknown_product", extra={"balance_key": str(request.key)})
                raise UnknownProductError(request.product_code)
            return self._execute(request)

    def receive(
        self,
        product_code: str,
        quantity: int,
        lot_number: str | None = None,
        expiration_date: date | str | None = None,
        note: str | None = None,
        *,
        idempotency_key: str | None = None,
        actor_id: str | None = None,
    ) -> Movement:
        """Record an IN movement."""
        return self.submit(
            product_code, MovementDirection.IN, quantity, lot_number, expiration_date, note,
            idempotency_key=idempotency_key, actor_id=actor_id,
        )

    def issue(
        self,
        product_code: str,
        quantity: int,
        lot_number: str | None = None,
        expiration_date: date | str | None = None,
        note: str | None = None,
        *,
        idempotency_key: str | None = None,
        actor_id: str | None = None,
    ) -> Movement:
        """Record an OUT movement."""
        return self.submit(
            product_code, MovementDirection.OUT, quantity, lot_number, expiration_date, note,
            idempotency_key=idempotency_key, actor_id=actor_id,
        )

    def adjust(
        self,
        product_code: str,
        delta: int,
        lot_number: str | None = None,
        expiration_date: date | str | None = None,
        note: str | None = None,
        *,
        idempotency_key: str | None = None,
        actor_id: str | None = None,
    ) -> Movement:
        """Apply a signed stock correction.

        A positive ``delta`` is recorded as IN, a negative one as OUT of
        ``abs(delta)``.  Zero is rejected.
        """
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise InvalidQuantityError([
                FieldError(
                    INVALID_QUANTITY,
                    "adjustment must be a non-zero integer",
                    "delta",
                    {"value": repr(delta)},
                )
            ])
        direction = MovementDirection.IN if delta > 0 else MovementDirection.OUT
        if note is None:
            note = f"Inventory adjustment: {delta:+d}"
        return self.submit(
            product_code, direction, abs(delta), lot_number, expiration_date, note,
            idempotency_key=idempotency_key, actor_id=actor_id,
        )

    # -------------------------------------------------------------------------
    # Attempt loop
    # -------------------------------------------------------------------------

    def _execute(self, request: MovementRequest) -> Movement:
        policy = self._policy
        for attempt in range(1, policy.max_attempts + 1):
            started = self._monotonic()
            try:
                movement = self._attempt(request, started)
            except _LostRace:
                reason = "version_conflict"
            except InsufficientStockError as exc:
                logger.info(
                    "insufficient_stock",
                    extra={
                        "balance_key": str(request.key),
                        "available": exc.available,
                        "requested": exc.requested,
                    },
                )
                raise
            except DBAPIError as exc:
                if is_timeout_error(exc):
                    logger.warning(
                        "transaction_timeout",
                        extra={
                            "balance_key": str(request.key),
                            "timeout_seconds": policy.transaction_timeout_seconds,
                        },
                    )
                    raise TransactionTimeoutError(
                        "submit_movement", policy.transaction_timeout_seconds
                    ) from exc
                # A lock wait that outlasted the deadline is a timeout, not a retryable conflict
                self._check_deadline(request, started, cause=exc)
                if is_unique_violation(exc) and request.idempotency_key is not None:
                    reason = "idempotency_key_race"
                elif is_transient_error(exc):
                    reason = "transient_storage_error"
                else:
                    logger.error(
                        "storage_error",
                        extra={"balance_key": str(request.key), "attempt": attempt},
                        exc_info=True,
                    )
                    raise StorageError("submit_movement", str(exc.orig)) from exc
            else:
                return movement

            logger.info(
                "movement_attempt_retry",
                extra={
                    "balance_key": str(request.key),
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "reason": reason,
                },
            )
            if attempt < policy.max_attempts:
                self._sleep(policy.backoff(attempt))

        logger.warning(
            "concurrency_conflict",
            extra={"balance_key": str(request.key), "attempts": policy.max_attempts},
        )
        raise ConcurrencyConflictError(str(request.key), policy.max_attempts)

    def _attempt(self, request: MovementRequest, started: float) -> Movement:
        session = self._session_factory()
        try:
            with session.begin():
                self._apply_statement_timeout(session)
                ledger = LedgerStore(session)

                if request.idempotency_key is not None:
                    original = self._replay(ledger, request)
                    if original is not None:
                        session.expunge(original)
                        return original

                balances = BalanceStore(session)
                state = balances.read(
                    request.key,
                    for_update=self._policy.lock_mode == LOCK_MODE_PESSIMISTIC,
                ) or BalanceState.empty()
                transition = plan_transition(
                    request.key, state, request.direction, request.quantity
                )

                now = self._clock.now()
                if not balances.conditional_write(request.key, transition, now):
                    raise _LostRace()

                movement = ledger.append(request, transition, now)
                if request.idempotency_key is not None:
                    ledger.record_idempotency_key(movement, request, now)

                self._check_deadline(request, started)
                # Returned detached, fully loaded, whatever the factory's expire_on_commit
                session.expunge(movement)

            logger.info(
                "movement_committed",
                extra={
                    "movement_id": str(movement.id),
                    "balance_key": str(request.key),
                    "direction": movement.direction,
                    "quantity": movement.quantity,
                    "balance_after": movement.balance_after,
                    "balance_version": movement.balance_version,
                },
            )
            return movement
        finally:
            session.close()

    def _replay(self, ledger: LedgerStore, request: MovementRequest) -> Movement | None:
        found = ledger.find_by_idempotency_key(request.idempotency_key)
        if found is None:
            return None
        record, movement = found
        received_hash = request.request_hash()
        if record.payload_hash != received_hash:
            logger.warning(
                "idempotency_key_reused",
                extra={"movement_id": str(movement.id)},
            )
            raise IdempotencyKeyReusedError(
                idempotency_key=request.idempotency_key,
                movement_id=str(movement.id),
                expected_hash=record.payload_hash,
                received_hash=received_hash,
            )
        logger.info("idempotent_replay", extra={"movement_id": str(movement.id)})
        return movement

    def _apply_statement_timeout(self, session: Session) -> None:
        if session.get_bind().dialect.name != "postgresql":
            return
        timeout_ms = int(self._policy.transaction_timeout_seconds * 1000)
        # SET does not accept bind parameters
        session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

    def _check_deadline(
        self,
        request: MovementRequest,
        started: float,
        cause: BaseException | None = None,
    ) -> None:
        elapsed = self._monotonic() - started
        limit = self._policy.transaction_timeout_seconds
        if elapsed > limit:
            logger.warning(
                "transaction_timeout",
                extra={
                    "balance_key": str(request.key),
                    "timeout_seconds": limit,
                    "elapsed_seconds": round(elapsed, 3),
                },
            )
            raise TransactionTimeoutError("submit_movement", limit, elapsed) from cause
