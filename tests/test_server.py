"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from metacatalog.entity import SYSTEM_NAMESPACE
from metacatalog.errors import InternalError
from metacatalog.server import create_app
from metacatalog.specs import ArtifactInfo

BASE = "/v3/namespaces/default"
APP = f"{BASE}/apps/AppWithDataset"
PING = f"{APP}/services/PingService"
STREAM = f"{BASE}/streams/mystream"
VIEW = f"{STREAM}/views/myview"
DATASET = f"{BASE}/datasets/myds"
ARTIFACT = f"{BASE}/artifacts/appwithdataset/versions/1.0.0"


@pytest.fixture
def client(world):
    with TestClient(create_app(world.catalog)) as c:
        yield c


def _keys(response):
    return {r["entityId"].get("application") or r["entityId"].get("stream")
            for r in response.json()}


class TestHealth:

    def test_ping(self, client):
        resp = client.get("/ping")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestProperties:

    def test_add_and_get(self, client):
        resp = client.post(f"{APP}/metadata/properties", json={"aKey": "aValue", "aK": "aV"})
        assert resp.status_code == 200
        resp = client.get(f"{APP}/metadata/properties", params={"scope": "user"})
        assert resp.status_code == 200
        assert resp.json() == {"aK": "aV", "aKey": "aValue"}

    def test_program_path(self, client):
        assert client.post(f"{PING}/metadata/properties", json={"sKey": "sValue"}).status_code == 200
        assert client.get(f"{PING}/metadata/properties").json() == {"sKey": "sValue"}

    @pytest.mark.parametrize("body", [
        {"k" * 100: "v"},
        {"k": "v" * 100},
        {"tags": "v"},
        {"aKey$": "aValue"},
        {"aKey": "aValue$"},
        {},
    ])
    def test_invalid(self, client, body):
        resp = client.post(f"{APP}/metadata/properties", json=body)
        assert resp.status_code == 400
        assert "error" in resp.json()
        assert client.get(f"{APP}/metadata/properties", params={"scope": "user"}).json() == {}

    def test_missing_body(self, client):
        assert client.post(f"{APP}/metadata/properties").status_code == 400

    def test_body_of_wrong_shape(self, client):
        assert client.post(f"{APP}/metadata/properties", json=["a", "b"]).status_code == 400

    def test_system_scope_write(self, client):
        resp = client.post(
            f"{APP}/metadata/properties", params={"scope": "system"}, json={"k": "v"}
        )
        assert resp.status_code == 400

    def test_remove_one_and_all(self, client):
        client.post(f"{DATASET}/metadata/properties", json={"a": "1", "b": "2"})
        assert client.delete(f"{DATASET}/metadata/properties/a").status_code == 200
        assert client.get(f"{DATASET}/metadata/properties", params={"scope": "user"}).json() == {"b": "2"}
        assert client.delete(f"{DATASET}/metadata/properties/nothere").status_code == 200
        assert client.delete(f"{DATASET}/metadata/properties").status_code == 200
        assert client.get(f"{DATASET}/metadata/properties", params={"scope": "user"}).json() == {}

    def test_remove_key_named_metadata(self, client):
        client.post(f"{APP}/metadata/properties", json={"metadata": "v", "other": "x"})
        assert client.delete(f"{APP}/metadata/properties/metadata").status_code == 200
        assert client.get(f"{APP}/metadata/properties", params={"scope": "user"}).json() == {"other": "x"}


class TestTags:

    def test_add_get_remove(self, client):
        assert client.post(f"{STREAM}/metadata/tags", json=["stTag", "Wow-WOW1"]).status_code == 200
        resp = client.get(f"{STREAM}/metadata/tags", params={"scope": "USER"})
        assert resp.json() == ["Wow-WOW1", "stTag"]
        assert client.delete(f"{STREAM}/metadata/tags/stTag").status_code == 200
        assert client.get(f"{STREAM}/metadata/tags", params={"scope": "user"}).json() == ["Wow-WOW1"]
        assert client.delete(f"{STREAM}/metadata/tags").status_code == 200
        assert client.get(f"{STREAM}/metadata/tags", params={"scope": "user"}).json() == []

    def test_remove_tag_named_metadata(self, client):
        client.post(f"{STREAM}/metadata/tags", json=["metadata", "keep"])
        assert client.delete(f"{STREAM}/metadata/tags/metadata").status_code == 200
        assert client.get(f"{STREAM}/metadata/tags", params={"scope": "user"}).json() == ["keep"]

    def test_union_of_scopes(self, client):
        client.post(f"{VIEW}/metadata/tags", json=["viewtag"])
        assert client.get(f"{VIEW}/metadata/tags").json() == ["mystream", "myview", "viewtag"]

    @pytest.mark.parametrize("body", [[], ["bad$"], "single", {"a": "b"}])
    def test_invalid(self, client, body):
        assert client.post(f"{STREAM}/metadata/tags", json=body).status_code == 400


class TestMetadata:

    def test_both_records(self, client):
        client.post(f"{ARTIFACT}/metadata/properties", json={"rKey": "rValue"})
        resp = client.get(f"{ARTIFACT}/metadata")
        assert resp.status_code == 200
        records = {r["scope"]: r for r in resp.json()}
        assert records["USER"]["properties"] == {"rKey": "rValue"}
        assert records["SYSTEM"]["tags"] == ["AppWithDataset", "appwithdataset"]
        assert records["USER"]["entityId"] == {
            "type": "artifact",
            "namespace": "default",
            "artifact": "appwithdataset",
            "version": "1.0.0",
        }

    def test_scope_is_case_insensitive(self, client):
        resp = client.get(f"{PING}/metadata", params={"scope": "SySTeM"})
        assert resp.status_code == 200
        [record] = resp.json()
        assert record["scope"] == "SYSTEM"
        assert record["entityId"]["programType"] == "Service"

    def test_unknown_scope(self, client):
        assert client.get(f"{APP}/metadata", params={"scope": "blah"}).status_code == 400
        assert client.get(f"{APP}/metadata/tags", params={"scope": "blah"}).status_code == 400

    def test_clear_user_metadata(self, client):
        client.post(f"{STREAM}/metadata/properties", json={"k": "v"})
        client.post(f"{STREAM}/metadata/tags", json=["t"])
        assert client.delete(f"{STREAM}/metadata").status_code == 200
        records = {r["scope"]: r for r in client.get(f"{STREAM}/metadata").json()}
        assert records["USER"]["properties"] == {}
        assert records["USER"]["tags"] == []
        assert records["SYSTEM"]["tags"] == ["mystream"]


class TestNotFound:

    @pytest.mark.parametrize("path", [
        f"{BASE}/apps/Nope",
        f"{APP}/flows/Nope",
        f"{BASE}/streams/nope/views/v",
        "/v3/namespaces/nons/datasets/myds",
    ])
    def test_missing_entity(self, client, path):
        assert client.get(f"{path}/metadata").status_code == 404
        assert client.post(f"{path}/metadata/properties", json={"k": "v"}).status_code == 404
        assert client.post(f"{path}/metadata/tags", json=["t"]).status_code == 404
        assert client.delete(f"{path}/metadata").status_code == 404
        assert client.delete(f"{path}/metadata/tags/t").status_code == 404

    def test_unrecognized_entity_path(self, client):
        assert client.get(f"{BASE}/clusters/c/metadata").status_code == 400


class TestSearch:

    def test_search(self, client):
        client.post(f"{APP}/metadata/properties", json={"multiword": "wow1 WoW2"})
        client.post(f"{STREAM}/metadata/properties", json={"multiword": "wow1 WoW2"})
        resp = client.get(f"{BASE}/metadata/search", params={"query": "multiword:*"})
        assert resp.status_code == 200
        assert _keys(resp) == {"AppWithDataset", "mystream"}
        resp = client.get(
            f"{BASE}/metadata/search", params={"query": "wow2", "target": "APP"}
        )
        assert resp.json() == [{"entityId": {
            "type": "application", "namespace": "default", "application": "AppWithDataset",
        }}]

    def test_no_results(self, client):
        resp = client.get(f"{BASE}/metadata/search", params={"query": "nothing"})
        assert resp.status_code == 200
        assert resp.json() == []

    @pytest.mark.parametrize("params", [
        {},
        {"query": "*"},
        {"query": "w*o"},
        {"query": "x", "target": "cluster"},
    ])
    def test_bad_requests(self, client, params):
        assert client.get(f"{BASE}/metadata/search", params=params).status_code == 400

    def test_system_artifact_visible(self, client, world):
        world.catalog.lifecycle.add_artifact(SYSTEM_NAMESPACE, ArtifactInfo("wordcount", "1.0.0"))
        resp = client.get(f"{BASE}/metadata/search", params={"query": "wordcount"})
        [hit] = resp.json()
        assert hit["entityId"]["namespace"] == "system"

    def test_unknown_namespace(self, client):
        resp = client.get("/v3/namespaces/nope/metadata/search", params={"query": "x"})
        assert resp.status_code == 200
        assert resp.json() == []


class TestInternalErrors:

    def test_storage_failure_is_500(self, world, monkeypatch):
        def broken(*args, **kwargs):
            raise InternalError("Metadata write failed: disk I/O error")

        monkeypatch.setattr(world.catalog._store, "set_properties", broken)
        with TestClient(create_app(world.catalog)) as c:
            resp = c.post(f"{APP}/metadata/properties", json={"k": "v"})
        assert resp.status_code == 500
        assert "disk I/O error" in resp.json()["error"]

    def test_unexpected_error_is_500(self, world, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(world.catalog, "get_tags", broken)
        with TestClient(create_app(world.catalog), raise_server_exceptions=False) as c:
            resp = c.get(f"{APP}/metadata/tags")
        assert resp.status_code == 500
