"""Manifest bookkeeping: completeness, merging and snapshot repair."""

from __future__ import annotations

import json

import pytest
from conftest import ScriptedModelProvider

from locus_agent.graph.manifest import (
    ManifestUpdater,
    apply_manifest_updates,
    completeness_score,
    compute_missing_info,
    merge_missing_info,
    refresh_completeness,
    validate_and_repair,
)
from locus_agent.graph.state import REQUIRED_MANIFEST_FIELDS, AgentState, ProjectManifest, ProjectPhase

# ---------------------------------------------------------------------------
# Completeness
# ---------------------------------------------------------------------------


class TestCompleteness:
    def test_empty_missing_info_is_complete(self):
        assert completeness_score([]) == 100

    def test_all_fields_missing_scores_zero(self):
        assert completeness_score(REQUIRED_MANIFEST_FIELDS) == 0

    def test_score_stays_in_bounds_with_unknown_names(self):
        score = completeness_score(list(REQUIRED_MANIFEST_FIELDS) + ["bogus", "other"])
        assert score == 0

    def test_duplicates_count_once(self):
        assert completeness_score(["name", "name"]) == completeness_score(["name"])

    def test_eight_of_nine_fields_filled(self, full_manifest):
        manifest = full_manifest.model_copy(update={"competitors": []})

        missing = compute_missing_info(manifest)

        assert missing == ["competitors"]
        assert completeness_score(missing) == 89

    def test_fresh_manifest_only_phase_is_present(self):
        missing = compute_missing_info(ProjectManifest())

        assert "phase" not in missing
        assert len(missing) == len(REQUIRED_MANIFEST_FIELDS) - 1

    def test_refresh_completeness_writes_score(self):
        state = AgentState(missing_info=["name", "mission", "features"])

        refresh_completeness(state)

        assert state.manifest.completeness_score == 67

    def test_whitespace_string_counts_as_empty(self, full_manifest):
        manifest = full_manifest.model_copy(update={"brand_voice": "   "})
        assert compute_missing_info(manifest) == ["brand_voice"]


# ---------------------------------------------------------------------------
# Merging updates
# ---------------------------------------------------------------------------


class TestApplyManifestUpdates:
    def test_accepts_camel_and_snake_case(self):
        manifest, changed = apply_manifest_updates(
            ProjectManifest(), {"name": "Recipe Box", "targetUsers": ["cooks"], "tech_stack": ["Go"]}
        )

        assert manifest.name == "Recipe Box"
        assert manifest.target_users == ["cooks"]
        assert manifest.tech_stack == ["Go"]
        assert changed == ["name", "target_users", "tech_stack"]

    def test_drops_unknown_and_read_only_keys(self):
        manifest, changed = apply_manifest_updates(
            ProjectManifest(), {"favouriteColour": "blue", "completenessScore": 100}
        )

        assert changed == []
        assert manifest.completeness_score == 0

    def test_drops_invalid_values(self):
        manifest, changed = apply_manifest_updates(ProjectManifest(), {"phase": "LAUNCHED", "name": "X"})

        assert manifest.phase == ProjectPhase.PLANNING
        assert changed == ["name"]

    def test_phase_aliases(self):
        manifest, _ = apply_manifest_updates(ProjectManifest(), {"phase": "build"})
        assert manifest.phase == ProjectPhase.MVP_BUILD

    def test_string_wrapped_into_list_field(self):
        manifest, _ = apply_manifest_updates(ProjectManifest(), {"features": "offline mode"})
        assert manifest.features == ["offline mode"]

    def test_unchanged_value_is_not_reported(self, full_manifest):
        _, changed = apply_manifest_updates(full_manifest, {"name": "Recipe Box"})
        assert changed == []

    def test_original_manifest_untouched(self):
        original = ProjectManifest()
        apply_manifest_updates(original, {"name": "New"})
        assert original.name == ""


class TestMergeMissingInfo:
    def test_filled_field_leaves_missing_info(self, full_manifest):
        merged = merge_missing_info(["name", "competitors"], full_manifest.model_copy(update={"competitors": []}))
        assert merged == ["competitors"]

    def test_completed_field_never_reappears(self, full_manifest):
        # "name" is no longer in missing_info, even if it is now empty and reported
        manifest = full_manifest.model_copy(update={"name": ""})

        merged = merge_missing_info(["mission"], manifest, reported=["name", "mission"])

        assert "name" not in merged
        assert merged == ["mission"]

    def test_reported_field_stays_missing_even_when_filled(self, full_manifest):
        merged = merge_missing_info(["mission"], full_manifest, reported=["mission"])
        assert merged == ["mission"]

    def test_reported_accepts_camel_case(self, full_manifest):
        merged = merge_missing_info(["target_users"], full_manifest, reported=["targetUsers"])
        assert merged == ["target_users"]


# ---------------------------------------------------------------------------
# Snapshot repair
# ---------------------------------------------------------------------------


class TestValidateAndRepair:
    def test_none_yields_default_manifest(self):
        manifest, repaired = validate_and_repair(None)

        assert manifest == ProjectManifest()
        assert set(repaired) == set(REQUIRED_MANIFEST_FIELDS)

    def test_invalid_phase_reset_to_planning(self, full_manifest):
        raw = full_manifest.model_dump(by_alias=True)
        raw["phase"] = "SOMEDAY"

        manifest, repaired = validate_and_repair(raw)

        assert manifest.phase == ProjectPhase.PLANNING
        assert repaired == ["phase"]

    def test_score_clamped(self, full_manifest):
        raw = full_manifest.model_dump(by_alias=True)
        raw["completenessScore"] = 250

        manifest, repaired = validate_and_repair(raw)

        assert manifest.completeness_score == 100
        assert "completeness_score" in repaired

    def test_wrong_type_reset_to_default(self, full_manifest):
        raw = full_manifest.model_dump()
        raw["features"] = {"not": "a list"}

        manifest, repaired = validate_and_repair(raw)

        assert manifest.features == []
        assert repaired == ["features"]
        assert manifest.name == "Recipe Box"


# ---------------------------------------------------------------------------
# Passive updater
# ---------------------------------------------------------------------------


class TestManifestUpdater:
    @pytest.mark.asyncio
    async def test_merges_extracted_facts(self):
        model = ScriptedModelProvider([json.dumps({"techStack": ["Django"], "competitors": ["Mealime"]})])
        state = AgentState(missing_info=["tech_stack", "competitors", "mission"])

        changed = await ManifestUpdater(model).update(state, "We use Django, competing with Mealime")

        assert changed == ["tech_stack", "competitors"]
        assert state.missing_info == ["mission"]
        assert state.manifest.completeness_score == 89

    @pytest.mark.asyncio
    async def test_unparseable_output_changes_nothing(self):
        model = ScriptedModelProvider(["Sure! Nothing new here."])
        state = AgentState(missing_info=["name"])

        changed = await ManifestUpdater(model).update(state, "hello")

        assert changed == []
        assert state.manifest == ProjectManifest(completeness_score=state.manifest.completeness_score)
        assert state.missing_info == ["name"]

    @pytest.mark.asyncio
    async def test_model_failure_is_swallowed(self):
        model = ScriptedModelProvider([RuntimeError("rate limited")])
        state = AgentState()

        assert await ManifestUpdater(model).update(state, "hello") == []
