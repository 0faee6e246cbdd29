"""
Tests for the AMA-G policy engine.

Tests cover:
- Each rule's pass and fail conditions
- Priority order of the aggregate verdict
- Determinism of repeated evaluations
- Infrastructure failures surfacing as failed verdicts, never exceptions
"""
import pytest

from credential_vault.exceptions import StoreUnavailable
from credential_vault.governance import (
    ALLOWED_ACTIONS,
    Action,
    OperationContext,
    PolicyEngine,
    RuleKind,
)
from credential_vault.governance.policy import (
    ALL_RULES_PASSED,
    INFRASTRUCTURE_UNAVAILABLE,
)


def _context(**overrides):
    values = {
        "user_id": 7,
        "action": Action.CREATE_CREDENTIAL,
        "resource_type": "credential",
        "input": {"platform": "orchestration-platform", "name": "prod-key"},
    }
    values.update(overrides)
    return OperationContext(**values)


@pytest.fixture
def engine():
    return PolicyEngine()


class TestAggregate:

    @pytest.mark.asyncio
    async def test_all_rules_pass(self, engine):
        verdict = await engine.evaluate(_context())
        assert verdict.passed is True
        assert verdict.reason == ALL_RULES_PASSED
        assert verdict.rule_kind is RuleKind.AGGREGATE

    @pytest.mark.asyncio
    async def test_repeated_evaluations_agree(self, engine):
        context = _context(action="drop_everything")
        verdicts = [await engine.evaluate(context) for _ in range(5)]
        assert all(v == verdicts[0] for v in verdicts)

    @pytest.mark.asyncio
    async def test_verity_reported_before_authorization(self, engine):
        """Input failing verity and authorization reports verity."""
        verdict = await engine.evaluate(_context(user_id=0, action="drop_everything"))
        assert verdict.passed is False
        assert verdict.rule_kind is RuleKind.VERITY
        assert verdict.reason == "Invalid user context"

    @pytest.mark.asyncio
    async def test_evaluate_all_in_priority_order(self, engine):
        results = await engine.evaluate_all(_context())
        assert [r.rule_kind for r in results] == [
            RuleKind.VERITY,
            RuleKind.DETERMINISM,
            RuleKind.NO_CONTAMINATION,
            RuleKind.EPISTEMIC_SECURITY,
        ]
        assert all(r.passed for r in results)


class TestVerity:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [None, "text", ["a", "b"], 42])
    async def test_input_must_be_mapping(self, engine, payload):
        verdict = await engine.evaluate(_context(input=payload))
        assert verdict.rule_kind is RuleKind.VERITY
        assert verdict.reason == "Input must be a valid object"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", [None, 0, -3, "7", True])
    async def test_user_must_be_positive_int(self, engine, user_id):
        verdict = await engine.evaluate(_context(user_id=user_id))
        assert verdict.passed is False
        assert verdict.rule_kind is RuleKind.VERITY


class TestDeterminism:

    @pytest.mark.asyncio
    async def test_unserializable_input(self, engine):
        verdict = await engine.evaluate(_context(input={"handle": object()}))
        assert verdict.passed is False
        assert verdict.rule_kind is RuleKind.DETERMINISM

    @pytest.mark.asyncio
    async def test_empty_mapping_is_serializable(self, engine):
        verdict = await engine.evaluate(_context(action=Action.READ_STATUS, input={}))
        assert verdict.passed is True

    @pytest.mark.asyncio
    async def test_store_unreachable(self):
        async def probe():
            raise StoreUnavailable("down")

        verdict = await PolicyEngine(probe=probe).evaluate(_context())
        assert verdict.passed is False
        assert verdict.reason == INFRASTRUCTURE_UNAVAILABLE
        assert verdict.rule_kind is RuleKind.DETERMINISM

    @pytest.mark.asyncio
    async def test_unexpected_probe_error_does_not_raise(self):
        async def probe():
            raise RuntimeError("boom")

        verdict = await PolicyEngine(probe=probe).evaluate(_context())
        assert verdict.passed is False
        assert verdict.rule_kind is RuleKind.DETERMINISM
        assert "boom" in verdict.reason

    @pytest.mark.asyncio
    async def test_probe_called(self, backend):
        engine = PolicyEngine(probe=backend.ping)
        assert (await engine.evaluate(_context())).passed is True
        backend.online = False
        assert (await engine.evaluate(_context())).reason == INFRASTRUCTURE_UNAVAILABLE


class TestNoContamination:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", [
        Action.UPDATE_CREDENTIAL,
        Action.DELETE_CREDENTIAL,
        Action.UPDATE_CONNECTION,
        Action.EXECUTE_WORKFLOW,
    ])
    async def test_mutation_needs_resource_id(self, engine, action):
        verdict = await engine.evaluate(_context(action=action, input={"id": 5}))
        assert verdict.passed is False
        assert verdict.rule_kind is RuleKind.NO_CONTAMINATION

    @pytest.mark.asyncio
    @pytest.mark.parametrize("resource_id", [0, -1, "abc", True, 2.5])
    async def test_mutation_needs_positive_resource_id(self, engine, resource_id):
        verdict = await engine.evaluate(
            _context(
                action=Action.DELETE_CREDENTIAL, resource_id=resource_id, input={"id": 5},
            )
        )
        assert verdict.passed is False
        assert verdict.rule_kind is RuleKind.NO_CONTAMINATION

    @pytest.mark.asyncio
    async def test_mutation_with_resource_passes(self, engine):
        verdict = await engine.evaluate(
            _context(action=Action.DELETE_CREDENTIAL, resource_id=5, input={"id": 5})
        )
        assert verdict.passed is True

    @pytest.mark.asyncio
    async def test_create_needs_no_resource_id(self, engine):
        assert (await engine.evaluate(_context())).passed is True


class TestEpistemicSecurity:

    @pytest.mark.asyncio
    async def test_unknown_action_blocked(self, engine):
        verdict = await engine.evaluate(_context(action="export_all_secrets"))
        assert verdict.passed is False
        assert verdict.rule_kind is RuleKind.EPISTEMIC_SECURITY
        assert verdict.reason == 'Action "export_all_secrets" is not explicitly allowed'

    @pytest.mark.asyncio
    async def test_string_action_names_accepted(self, engine):
        verdict = await engine.evaluate(_context(action="create_credential"))
        assert verdict.passed is True

    def test_allow_list(self):
        assert "create_credential" in ALLOWED_ACTIONS
        assert "read_status" in ALLOWED_ACTIONS
        assert "rotate_encryption_key" in ALLOWED_ACTIONS
        assert len(ALLOWED_ACTIONS) == 12
