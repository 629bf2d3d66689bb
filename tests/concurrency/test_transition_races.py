"""
Racing transitions against a file-backed database.

Each thread runs its own unit of work on its own pooled connection, so the
compare-and-set in LifecycleStore is the only thing deciding the winner.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from workforce_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from workforce_kernel.db.immutability import unregister_immutability_listeners
from workforce_kernel.domain.lifecycles import CONTRACT_WORKFLOW
from workforce_kernel.domain.states import ContractWorkflowStatus
from workforce_kernel.exceptions import (
    ConflictRetryable,
    InvalidTransitionError,
    TransactionError,
)
from workforce_kernel.models.contract import Contract
from workforce_kernel.services.lifecycle_store import LifecycleStore

LOSING_OUTCOMES = (ConflictRetryable, InvalidTransitionError, TransactionError)


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so threads get separate connections."""
    eng = init_engine_from_url(f"sqlite:///{tmp_path / 'race.db'}")
    create_tables()
    yield eng
    drop_tables()
    unregister_immutability_listeners()
    reset_engine()


def test_stale_writer_gets_conflict(world, contracts, make_draft, session_factory, clock):
    draft = contracts.create_contract(world.admin, make_draft())

    stale = session_factory()
    try:
        contract = stale.get(Contract, draft.id)
        assert contract.workflow_status == "draft"

        contracts.transition(world.admin, draft.id, "cancelled")

        with pytest.raises(ConflictRetryable) as exc_info:
            LifecycleStore(stale, clock).apply(
                CONTRACT_WORKFLOW, contract, "draft", "pending_agency_sign",
                world.admin.user_id,
            )
        assert exc_info.value.expected_state == "draft"
    finally:
        stale.rollback()
        stale.close()

    assert contracts.get_contract(world.admin, draft.id).workflow_status is (
        ContractWorkflowStatus.CANCELLED
    )


def test_racing_cancels_have_one_winner(world, contracts, make_draft, dispatched):
    draft = contracts.create_contract(world.admin, make_draft())
    barrier = Barrier(2)

    def cancel(actor):
        barrier.wait(timeout=5)
        try:
            return contracts.transition(actor, draft.id, "cancelled")
        except LOSING_OUTCOMES as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(cancel, [world.admin, world.manager]))

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1

    final = contracts.get_contract(world.admin, draft.id)
    assert final.workflow_status is ContractWorkflowStatus.CANCELLED
    assert final.version == draft.version + 1
    assert dispatched.names().count("contract.cancel") == 1
