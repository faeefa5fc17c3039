"""Tests for nurture pathway selection (scoutflow/engine/pathways.py)."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from scoutflow.core.exceptions import DatabaseError, ProspectNotFound, ValidationError
from scoutflow.db.database import Database
from scoutflow.db.models import LeadTemperature
from scoutflow.engine import pathways
from scoutflow.engine.pathways import (
    HOT_PATHWAY_MIN_SCORE,
    WARM_PATHWAY_MIN_SCORE,
    PathwaySelector,
    content_angles_for,
    select_pathway,
)
from tests.conftest import NOW, USER_ID


class TestSelectPathway:
    """Policy table."""

    def test_hot_high_score_closes(self):
        pathway = select_pathway(1, "hot", 85, now=NOW)
        assert pathway.sequence_key == "hot_close"
        assert [s.day for s in pathway.nurture_sequence] == [0, 1, 2]
        assert pathway.next_action == "Schedule call or meeting"
        assert pathway.next_action_date == NOW + timedelta(hours=2)

    def test_warm_mid_score_nurtures(self):
        pathway = select_pathway(1, "warm", 60, now=NOW)
        assert pathway.sequence_key == "warm_nurture"
        assert [s.day for s in pathway.nurture_sequence] == [0, 2, 5, 7]
        assert pathway.next_action == "Send educational content"
        assert pathway.next_action_date == NOW + timedelta(days=1)

    @pytest.mark.parametrize(
        "temperature,score",
        [("cold", 95), ("hot", 79), ("warm", 59), ("warm", 23), ("cold", 0)],
    )
    def test_everything_else_is_cold(self, temperature, score):
        pathway = select_pathway(1, temperature, score, now=NOW)
        assert pathway.sequence_key == "cold_nurture"
        assert [s.day for s in pathway.nurture_sequence] == [0, 3, 7, 14, 21]
        assert pathway.next_action == "Build rapport with value touch"
        assert pathway.next_action_date == NOW + timedelta(days=3)

    def test_hot_below_threshold_follows_table_branch(self):
        """Next action follows the selected sequence, not the raw temperature."""
        pathway = select_pathway(1, LeadTemperature.HOT, 70, now=NOW)
        assert pathway.lead_temperature is LeadTemperature.HOT
        assert pathway.next_action == "Build rapport with value touch"

    def test_invalid_temperature(self):
        with pytest.raises(ValidationError):
            select_pathway(1, "lukewarm", 50)

    def test_temperature_case_insensitive(self):
        assert select_pathway(1, "HOT", 90, now=NOW).sequence_key == "hot_close"

    def test_metadata(self):
        pathway = select_pathway(1, "warm", 65, now=NOW)
        assert [t["timing"] for t in pathway.recommended_timing] == [
            "Morning 9-11am",
            "Lunch 12-1pm",
            "Evening 7-9pm",
        ]
        assert pathway.content_angles == ["Success stories", "Industry education", "Problem-solution focus"]

    @pytest.mark.parametrize(
        "score,first_angle",
        [(80, "Direct opportunity presentation"), (60, "Success stories"), (59, "Value-first content")],
    )
    def test_content_angles(self, score, first_angle):
        assert content_angles_for(score)[0] == first_angle

    def test_content_angle_bands_follow_pathway_thresholds(self):
        assert content_angles_for(HOT_PATHWAY_MIN_SCORE) == content_angles_for(100)
        assert content_angles_for(HOT_PATHWAY_MIN_SCORE - 1) == content_angles_for(WARM_PATHWAY_MIN_SCORE)
        assert content_angles_for(WARM_PATHWAY_MIN_SCORE - 1) == content_angles_for(0)

    def test_content_angles_track_threshold_changes(self, monkeypatch):
        monkeypatch.setattr(pathways, "HOT_PATHWAY_MIN_SCORE", 90)
        monkeypatch.setattr(pathways, "WARM_PATHWAY_MIN_SCORE", 70)
        assert content_angles_for(85)[0] == "Success stories"
        assert content_angles_for(65)[0] == "Value-first content"

    def test_pure_given_now(self):
        assert select_pathway(1, "warm", 70, now=NOW) == select_pathway(1, "warm", 70, now=NOW)


class TestPathwaySelector:
    """Stored pathway replacement."""

    def test_select_stores_one_row(self, memory_db: Database, prospect_id: int):
        selector = PathwaySelector(memory_db)
        selector.select(prospect_id, "cold", 10, now=NOW)
        selection = selector.select(prospect_id, "hot", 90, now=NOW)

        assert selection.warnings == []
        stored = memory_db.get_pathway(prospect_id)
        assert stored.sequence_key == "hot_close"
        assert stored.user_id == USER_ID

    def test_missing_temperature_derived_from_score(self, memory_db: Database, prospect_id: int):
        selection = PathwaySelector(memory_db).select(prospect_id, None, 85, now=NOW)
        assert selection.pathway.lead_temperature is LeadTemperature.HOT
        assert selection.pathway.sequence_key == "hot_close"

    def test_missing_prospect(self, memory_db: Database):
        with pytest.raises(ProspectNotFound):
            PathwaySelector(memory_db).select(404, "warm", 70)

    def test_storage_failure_surfaces_warning(self, memory_db: Database, prospect_id: int):
        with patch.object(memory_db, "upsert_pathway", side_effect=DatabaseError("locked")):
            selection = PathwaySelector(memory_db).select(prospect_id, "warm", 70, now=NOW)
        assert selection.pathway.sequence_key == "warm_nurture"
        assert len(selection.warnings) == 1
