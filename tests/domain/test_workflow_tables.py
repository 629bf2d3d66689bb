"""
Lifecycle tables: shape, edges and the edge-only property.

Every (from, to) pair that is not declared must be refused with
InvalidTransitionError before any gate or permission is consulted, and
must leave the entity untouched.
"""

from types import SimpleNamespace
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from workforce_kernel.domain.lifecycles import (
    CLOSED_INVOICE_STATES,
    CONTRACT_WORKFLOW,
    INVOICE_WORKFLOW,
    REMITTANCE_TRANSITIONS,
    TIMESHEET_WORKFLOW,
    WORKFLOWS,
)
from workforce_kernel.domain.permissions import RESOURCE_ACTIONS
from workforce_kernel.domain.scope import Actor
from workforce_kernel.domain.states import (
    ContractWorkflowStatus,
    InvoiceState,
    RemittanceMilestone,
    RemittanceStatus,
    TimesheetState,
)
from workforce_kernel.domain.workflow import Guard, Transition, Workflow
from workforce_kernel.exceptions import ConfigurationError, InvalidTransitionError
from workforce_services.workflow_engine import (
    GateExecutor,
    WorkflowEngine,
    default_gate_executor,
)

TENANT = uuid4()


def _all_keys() -> frozenset[str]:
    return frozenset(
        f"{resource}.{action}.global"
        for resource, actions in RESOURCE_ACTIONS.items()
        for action in actions
    )


SUPERUSER = Actor(user_id=uuid4(), tenant_id=TENANT, permission_keys=_all_keys())


def _permissive_engine() -> WorkflowEngine:
    gates = GateExecutor()
    for workflow in WORKFLOWS.values():
        for t in workflow.transitions:
            for g in t.guards:
                gates.register(g.name, lambda _ctx: True)
    return WorkflowEngine(gates=gates)


def _entity(workflow: Workflow, state: str):
    return SimpleNamespace(
        id=uuid4(), tenant_id=TENANT, company_id=None, created_by_id=uuid4(),
        owner_id=None, **{workflow.state_attr: state},
    )


class TestContractTable:
    def test_signing_path_is_linear(self):
        C = ContractWorkflowStatus
        path = [C.DRAFT, C.PENDING_AGENCY_SIGN, C.PENDING_CONTRACTOR_SIGN, C.ACTIVE]
        for src, dst in zip(path, path[1:]):
            assert CONTRACT_WORKFLOW.find(src.value, dst.value) is not None
        assert CONTRACT_WORKFLOW.find(C.DRAFT.value, C.ACTIVE.value) is None

    def test_send_for_signature_gates(self):
        t = CONTRACT_WORKFLOW.find("draft", "pending_agency_sign")
        assert [g.name for g in t.guards] == ["counterpart_assigned", "all_approvers_approved"]

    def test_pause_and_resume(self):
        assert CONTRACT_WORKFLOW.find("active", "paused").action == "pause"
        assert CONTRACT_WORKFLOW.find("paused", "active").action == "resume"

    def test_terminal_states_have_no_exit(self):
        for state in ("completed", "cancelled", "terminated"):
            assert CONTRACT_WORKFLOW.is_terminal(state)
            assert CONTRACT_WORKFLOW.outgoing(state) == ()

    def test_state_attribute_is_workflow_status(self):
        assert CONTRACT_WORKFLOW.state_attr == "workflow_status"


class TestInvoiceTable:
    def test_settlement_edges_name_their_milestones(self):
        I = InvoiceState
        paid = INVOICE_WORKFLOW.find(I.SENT.value, I.PAYMENT_RECEIVED.value)
        assert paid.milestones == (RemittanceMilestone.PAYMENT_RECEIVED.value,)
        split = INVOICE_WORKFLOW.find(I.PAYMENT_RECEIVED.value, I.SPLIT.value)
        assert set(split.milestones) == {
            RemittanceMilestone.CONTRACTOR_PAYMENT_SENT.value,
            RemittanceMilestone.PAYROLL_PAYMENT_SENT.value,
        }

    def test_review_loop(self):
        assert INVOICE_WORKFLOW.find("reviewing", "changes_requested") is not None
        assert INVOICE_WORKFLOW.find("changes_requested", "reviewing") is not None

    def test_only_drafts_cancel(self):
        sources = [t.from_state for t in INVOICE_WORKFLOW.transitions if t.to_state == "cancelled"]
        assert sources == ["draft"]

    def test_closed_states_are_terminal(self):
        assert CLOSED_INVOICE_STATES <= set(INVOICE_WORKFLOW.terminal_states)


class TestTimesheetTable:
    def test_direct_review_from_submitted(self):
        for target in ("approved", "rejected", "changes_requested"):
            assert TIMESHEET_WORKFLOW.find("submitted", target) is not None
            assert TIMESHEET_WORKFLOW.find("under_review", target) is not None

    def test_sent_only_from_approved(self):
        sources = [t.from_state for t in TIMESHEET_WORKFLOW.transitions if t.to_state == "sent"]
        assert sources == [TimesheetState.APPROVED.value]


class TestRemittanceStatusTable:
    def test_forward_only(self):
        assert REMITTANCE_TRANSITIONS[RemittanceStatus.COMPLETED] == frozenset()
        assert REMITTANCE_TRANSITIONS[RemittanceStatus.FAILED] == frozenset()
        assert RemittanceStatus.PENDING not in REMITTANCE_TRANSITIONS[RemittanceStatus.PROCESSING]


class TestWorkflowValidation:
    def test_unknown_state_rejected(self):
        with pytest.raises(ConfigurationError):
            Workflow(
                name="broken", entity_type="X", description="", initial_state="a",
                states=("a",), transitions=(Transition("a", "b", "go", "contract.update"),),
            )

    def test_terminal_with_exit_rejected(self):
        with pytest.raises(ConfigurationError):
            Workflow(
                name="broken", entity_type="X", description="", initial_state="a",
                states=("a", "b"), transitions=(Transition("b", "a", "back", "contract.update"),),
                terminal_states=("b",),
            )

    def test_duplicate_edge_rejected(self):
        with pytest.raises(ConfigurationError):
            Workflow(
                name="broken", entity_type="X", description="", initial_state="a",
                states=("a", "b"),
                transitions=(
                    Transition("a", "b", "go", "contract.update"),
                    Transition("a", "b", "again", "contract.update"),
                ),
            )

    def test_every_gate_has_a_default_evaluator(self):
        executor = default_gate_executor()
        missing = {
            g.name
            for w in WORKFLOWS.values()
            for t in w.transitions
            for g in t.guards
            if not executor.is_registered(g.name)
        }
        assert not missing

    def test_unregistered_gate_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            GateExecutor().evaluate(Guard(name="nope", description=""), {})


_PAIRS = st.sampled_from(sorted(WORKFLOWS)).flatmap(
    lambda name: st.tuples(
        st.just(name),
        st.sampled_from(WORKFLOWS[name].states),
        st.sampled_from(WORKFLOWS[name].states),
    )
)


@settings(max_examples=300, deadline=None)
@given(_PAIRS)
def test_only_declared_edges_are_accepted(triple):
    name, src, dst = triple
    workflow = WORKFLOWS[name]
    entity = _entity(workflow, src)
    engine = _permissive_engine()

    if workflow.find(src, dst) is None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.request_transition(workflow, entity, dst, SUPERUSER)
        assert exc_info.value.from_state == src
        assert exc_info.value.to_state == dst
    else:
        decision = engine.request_transition(workflow, entity, dst, SUPERUSER)
        assert decision.to_state == dst
    assert getattr(entity, workflow.state_attr) == src
