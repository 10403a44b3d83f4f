"""Provider adapter tests: OpenAI error classification and Qdrant point ids."""
import httpx
import openai
import pytest

from contentflow.core.errors import PipelineError, TransientQuotaError, UpstreamUnavailableError
from contentflow.core.openai_client import map_openai_error
from contentflow.providers.qdrant_store import stable_point_id

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


def _response(status, headers=None):
    return httpx.Response(status, headers=headers or {}, request=REQUEST)


def test_rate_limit_maps_to_quota_with_retry_after():
    err = openai.RateLimitError("Rate limit reached", response=_response(429, {"retry-after": "12"}), body=None)
    mapped = map_openai_error(err)
    assert isinstance(mapped, TransientQuotaError)
    assert mapped.retry_after == 12.0


def test_retry_after_ms_header_preferred():
    err = openai.RateLimitError("slow down", response=_response(429, {"retry-after-ms": "1500", "retry-after": "9"}), body=None)
    assert map_openai_error(err).retry_after == 1.5


def test_quota_wording_maps_to_quota():
    err = openai.PermissionDeniedError("You exceeded your current quota", response=_response(403), body=None)
    assert isinstance(map_openai_error(err), TransientQuotaError)


def test_server_error_maps_to_unavailable():
    err = openai.InternalServerError("upstream exploded", response=_response(503), body=None)
    assert isinstance(map_openai_error(err), UpstreamUnavailableError)


def test_connection_error_maps_to_unavailable():
    err = openai.APIConnectionError(request=REQUEST)
    assert isinstance(map_openai_error(err), UpstreamUnavailableError)


def test_bad_request_is_plain_pipeline_error():
    err = openai.BadRequestError("input too long", response=_response(400), body=None)
    mapped = map_openai_error(err)
    assert type(mapped) is PipelineError


@pytest.mark.parametrize("record_id", ["c1-chunk-0", "c1-chunk-1", "other-chunk-0"])
def test_point_id_is_stable_uuid(record_id):
    assert stable_point_id(record_id) == stable_point_id(record_id)
    assert len(stable_point_id(record_id)) == 36


def test_point_ids_differ_per_chunk():
    assert stable_point_id("c1-chunk-0") != stable_point_id("c1-chunk-1")
