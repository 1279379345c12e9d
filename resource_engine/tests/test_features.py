"""
Tests for the Feature/Label Builder.
"""
import numpy as np
import pytest

from resource_engine.domain.types import ResourceType
from resource_engine.ml.features import (
    DEFAULT_FEATURE_VALUES,
    FEATURE_NAMES,
    LABEL_NAMES,
    TrainingDataset,
    apply_normalization,
    build_feature_vector,
    build_label_vector,
    compute_normalization_params,
    features_for_allocation,
    season_for,
)

from .factories import START, make_resource, make_task, make_training_points


class TestVectors:
    """Tests for fixed-order vectors."""

    def test_feature_vector_has_fixed_length(self):
        assert build_feature_vector({}).shape == (len(FEATURE_NAMES),) == (17,)

    def test_label_vector_has_fixed_length(self):
        assert build_label_vector({}).shape == (len(LABEL_NAMES),) == (6,)

    def test_season_is_one_hot(self):
        vector = build_feature_vector({"season": "Summer"})
        season = [vector[FEATURE_NAMES.index(f"season_{s}")] for s in ("spring", "summer", "fall", "winter")]
        assert season == [0.0, 1.0, 0.0, 0.0]

    def test_skills_contribute_count(self):
        vector = build_feature_vector({"required_skills": ["weld", "paint", "lift"]})
        assert vector[FEATURE_NAMES.index("required_skills_count")] == 3

    def test_weather_maps_to_severity(self):
        storm = build_feature_vector({"weather": "storm"})
        clear = build_feature_vector({"weather": "clear"})
        index = FEATURE_NAMES.index("weather_severity")
        assert storm[index] > clear[index]

    def test_missing_fields_use_defaults_not_zero(self):
        vector = build_feature_vector({})
        assert vector[FEATURE_NAMES.index("worker_proficiency_level")] == DEFAULT_FEATURE_VALUES["worker_proficiency_level"]
        assert vector[FEATURE_NAMES.index("task_complexity")] != 0


class TestDataset:
    """Tests for dataset defaults and normalization."""

    def test_defaults_are_dataset_medians(self):
        points = make_training_points(5)
        dataset = TrainingDataset("ds", "test", points)
        dataset.ensure_normalization()

        complexities = [p.features["task_complexity"] for p in points]
        assert dataset.feature_defaults["task_complexity"] == pytest.approx(np.median(complexities))

    def test_fallback_when_no_record_has_field(self):
        dataset = TrainingDataset("ds", "test", make_training_points(4))
        dataset.ensure_normalization()
        assert dataset.feature_defaults["equipment_age"] == DEFAULT_FEATURE_VALUES["equipment_age"]

    def test_normalization_computed_once(self):
        dataset = TrainingDataset("ds", "test", make_training_points(6))
        first = dataset.ensure_normalization()
        dataset.data_points.extend(make_training_points(6, seed_offset=3))
        assert dataset.ensure_normalization() is first

    def test_empty_dataset(self):
        dataset = TrainingDataset("empty", "empty")
        params = dataset.ensure_normalization()
        assert dataset.is_empty
        assert dataset.feature_matrix().shape == (0, 17)
        assert len(params.mean) == 17

    def test_split_keeps_one_training_point(self):
        dataset = TrainingDataset("one", "one", make_training_points(1))
        train, val, test = dataset.split_indices(seed=1)
        assert len(train) == 1
        assert len(val) + len(test) == 0

    def test_split_ratio(self):
        dataset = TrainingDataset("ds", "test", make_training_points(20))
        train, val, test = dataset.split_indices(seed=1)
        assert (len(train), len(val), len(test)) == (14, 3, 3)


class TestNormalization:
    """Tests for z-score normalization."""

    def test_zero_std_treated_as_one(self):
        matrix = np.array([[1.0, 5.0], [3.0, 5.0]])
        params = compute_normalization_params(matrix)
        normalized = apply_normalization(matrix, params)
        assert np.allclose(normalized[:, 0], [-1.0, 1.0])
        assert np.allclose(normalized[:, 1], [0.0, 0.0])

    def test_params_record_min_max(self):
        params = compute_normalization_params(np.array([[1.0], [4.0], [2.0]]))
        assert params.min == [1.0]
        assert params.max == [4.0]


class TestInferenceFeatures:
    """Tests for features_for_allocation."""

    def test_worker_features(self):
        task = make_task(days=6, complexity=7, required_skills=["a"])
        worker = make_resource(proficiency=4, experience_years=9, completed_allocations=3)
        record = features_for_allocation(task, worker)

        vector = build_feature_vector(record)
        assert vector[FEATURE_NAMES.index("task_complexity")] == 7
        assert vector[FEATURE_NAMES.index("task_duration")] == 6
        assert vector[FEATURE_NAMES.index("worker_proficiency_level")] == 4
        assert vector[FEATURE_NAMES.index("previous_projects_count")] == 3
        assert record["season"] == season_for(START) == "spring"

    def test_equipment_features(self):
        record = features_for_allocation(make_task(), make_resource(resource_type=ResourceType.EQUIPMENT, condition=2))
        assert record["equipment_condition"] == 2
        assert "worker_proficiency_level" not in record
