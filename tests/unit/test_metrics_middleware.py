"""Unit tests for request path normalization in the metrics middleware"""
import pytest

from chemlab.observability.metrics_middleware import normalize_path


@pytest.mark.parametrize("path,expected", [
    ("/metrics", "/metrics"),
    ("/health", "/health"),
    ("/api/v1/progress", "/api/v1/progress"),
    ("/api/v1/lessons/42/complete", "/api/v1/lessons/{id}/complete"),
    (
        "/api/v1/quizzes/attempts/5b0c6a1e-2f4d-4c1a-9e7b-8d3f0a1b2c3d/grade",
        "/api/v1/quizzes/attempts/{uuid}/grade",
    ),
])
def test_normalize_path(path, expected):
    assert normalize_path(path) == expected
