"""Tests for metadata search: tokenization, wildcards, targets and visibility."""

import pytest

from conftest import VIEW_SCHEMA, app_with_dataset_spec
from metacatalog.entity import (
    DEFAULT_NAMESPACE,
    SYSTEM_NAMESPACE,
    DatasetId,
    ProgramType,
    StreamId,
)
from metacatalog.errors import BadRequestError
from metacatalog.specs import ArtifactInfo, DatasetSpec, ViewSpec
from metacatalog.types import TargetType

MULTIWORD = "wow1 WoW2   -    WOW3 - wow4_woW5 wow6"


def found(catalog, query, target=None, namespace=DEFAULT_NAMESPACE):
    return {r.entity for r in catalog.search(namespace, query, target)}


class TestTokenization:

    @pytest.fixture
    def multiword(self, world):
        world.catalog.add_properties(world.app, {"multiword": MULTIWORD})
        world.catalog.add_properties(world.stream, {"multiword": MULTIWORD})
        return world

    def test_keyed_tokens(self, multiword):
        c, app = multiword.catalog, multiword.app
        assert found(c, "multiword:wow1", TargetType.APP) == {app}
        assert found(c, "multiword:woW5", TargetType.APP) == {app}
        assert found(c, "multiword:WOW3", "app") == {app}

    def test_bare_token(self, multiword):
        assert found(multiword.catalog, "WOW3", TargetType.APP) == {multiword.app}
        assert found(multiword.catalog, "wow6") == {multiword.app, multiword.stream}

    def test_prefix(self, multiword):
        assert found(multiword.catalog, "wo*") == {multiword.app, multiword.stream}

    def test_keyed_wildcard(self, multiword):
        assert found(multiword.catalog, "multiword:*") == {multiword.app, multiword.stream}


class TestKeyedPrefix:

    @pytest.fixture
    def ping(self, world):
        world.catalog.add_properties(world.ping, {"sKey": "sValue", "sK": "sV"})
        return world

    def test_keyed_prefix(self, ping):
        assert found(ping.catalog, "sKey:s*") == {ping.ping}

    def test_keyed_literal_needs_whole_token(self, ping):
        assert found(ping.catalog, "sKey:s") == set()

    def test_bare_literal_needs_whole_token(self, ping):
        assert found(ping.catalog, "s") == set()

    def test_exact_tokens(self, ping):
        assert found(ping.catalog, "sK:sV") == {ping.ping}
        assert found(ping.catalog, "sValue", TargetType.PROGRAM) == {ping.ping}


class TestCaseFolding:

    def test_mixed_case_view_property(self, world):
        c = world.catalog
        c.add_properties(world.view, {"viewKey": "viewValue"})
        for query in ("viewkey:viewvalue", "VIEWKEY:viewvalue", "ViewKey:ViewValue"):
            assert found(c, query, TargetType.VIEW) == {world.view}
        assert found(c, "viewvalue", TargetType.VIEW) == {world.view}

    def test_tags(self, world):
        c = world.catalog
        c.add_tags(world.stream, ["Wow-WOW1"])
        assert found(c, "wow-wow1") == {world.stream}
        assert found(c, "tags:WOW") == {world.stream}
        assert found(c, "tags:wow*") == {world.stream}


class TestTargets:

    def test_target_filters(self, world):
        c = world.catalog
        for entity in (world.app, world.ping, world.stream, world.view,
                       world.dataset, world.artifact):
            c.add_tags(entity, ["common"])
        assert found(c, "common", TargetType.APP) == {world.app}
        assert found(c, "common", "PROGRAM") == {world.ping}
        assert found(c, "common", "stream") == {world.stream}
        assert found(c, "common", "VIEW") == {world.view}
        assert found(c, "common", "dataset") == {world.dataset}
        assert found(c, "common", "artifact") == {world.artifact}
        assert len(found(c, "common")) == 6
        assert len(found(c, "common", "ALL")) == 6

    def test_unknown_target(self, world):
        with pytest.raises(BadRequestError):
            world.catalog.search(DEFAULT_NAMESPACE, "common", "cluster")


class TestConjunction:

    def test_all_terms_must_match(self, world):
        c = world.catalog
        c.add_properties(world.app, {"owner": "alice", "team": "data"})
        c.add_properties(world.stream, {"owner": "alice"})
        assert found(c, "owner:alice") == {world.app, world.stream}
        assert found(c, "owner:alice team:data") == {world.app}
        assert found(c, "owner:alice+team:data") == {world.app}
        assert found(c, "owner:alice team:ops") == set()

    def test_user_and_system_terms_combine(self, world):
        c = world.catalog
        c.add_tags(world.ping, ["critical"])
        assert found(c, "critical Realtime") == {world.ping}


class TestSystemMetadataSearch:

    def test_program_modes(self, all_programs):
        c, app = all_programs.catalog, all_programs.app
        batch = {
            app.program(ProgramType.MAPREDUCE, "NoOpMR"),
            app.program(ProgramType.SPARK, "NoOpSpark"),
            app.program(ProgramType.WORKFLOW, "NoOpWorkflow"),
            DatasetId(DEFAULT_NAMESPACE, "kvt"),
            DatasetId(DEFAULT_NAMESPACE, "dsWithSchema"),
        }
        assert found(c, "Batch") == batch
        assert found(c, "Realtime") == {
            app.program(ProgramType.FLOW, "NoOpFlow"),
            app.program(ProgramType.SERVICE, "NoOpService"),
            app.program(ProgramType.WORKER, "NoOpWorker"),
        }

    def test_workflow_nodes(self, all_programs):
        c, app = all_programs.catalog, all_programs.app
        assert found(c, "NoOpMR", TargetType.PROGRAM) == {
            app.program(ProgramType.MAPREDUCE, "NoOpMR"),
            app.program(ProgramType.WORKFLOW, "NoOpWorkflow"),
        }
        assert found(c, "NoOpAction") == {app.program(ProgramType.WORKFLOW, "NoOpWorkflow")}

    def test_program_type(self, all_programs):
        c, app = all_programs.catalog, all_programs.app
        assert found(c, "Flow", TargetType.PROGRAM) == {app.program(ProgramType.FLOW, "NoOpFlow")}

    def test_application_programs_and_schedules(self, all_programs):
        c, app = all_programs.catalog, all_programs.app
        assert found(c, "Service:*", TargetType.APP) == {app}
        assert found(c, "EveryMinute") == {app}
        assert found(c, "schedule:SampleSchedule:*") == {app}
        assert found(c, "AllProgramsApp") == {app, all_programs.artifact}

    def test_plugins(self, all_programs):
        c, plugins = all_programs.catalog, all_programs.plugins
        for query in ("plugins", "Transform", "Pluggable:Transform", "plugin:Pluggable:*"):
            assert found(c, query) == {plugins}
        c.add_tags(all_programs.app, ["Pluggable"])
        assert found(c, "Pluggable") == {all_programs.app, plugins}

    def test_stream_schema(self, all_programs):
        text = StreamId(DEFAULT_NAMESPACE, "text")
        for query in ("body", "body:STRING", "bo*", "body:STR*"):
            assert found(all_programs.catalog, query) == {text}
        assert found(all_programs.catalog, "ttl:*") == {text}

    def test_dataset_schema(self, all_programs):
        c = all_programs.catalog
        ds = DatasetId(DEFAULT_NAMESPACE, "dsWithSchema")
        assert found(c, "field1:string field2:int") == {ds}
        assert found(c, "field2") == {ds}
        assert found(c, "body:string+field1:string") == set()

    def test_schema_wildcard(self, all_programs):
        c = all_programs.catalog
        text = StreamId(DEFAULT_NAMESPACE, "text")
        ds = DatasetId(DEFAULT_NAMESPACE, "dsWithSchema")
        kvt = DatasetId(DEFAULT_NAMESPACE, "kvt")
        assert found(c, "schema:*") == {text, ds}

        view = text.view("view")
        c.lifecycle.create_or_update_view(view, ViewSpec("view", schema=VIEW_SCHEMA))
        assert found(c, "schema:*") == {text, ds, view}
        assert found(c, "viewBody:bytes") == {view}

        c.add_properties(kvt, {"schema": "schemaValue"})
        assert found(c, "schema:*") == {text, ds, view, kvt}
        assert found(c, "schema:schemaValue") == {kvt}


class TestVisibility:

    def test_namespace_isolation(self, catalog):
        lifecycle = catalog.lifecycle
        lifecycle.create_namespace("ns1")
        lifecycle.create_namespace("ns2")
        a1 = lifecycle.deploy_application("ns1", app_with_dataset_spec())
        a2 = lifecycle.deploy_application("ns2", app_with_dataset_spec())
        catalog.add_tags(a1, ["shared"])
        catalog.add_tags(a2, ["shared"])
        assert found(catalog, "shared", namespace="ns1") == {a1}
        assert found(catalog, "shared", namespace="ns2") == {a2}
        assert found(catalog, "shared") == set()

    def test_system_namespace_visible_everywhere(self, catalog):
        lifecycle = catalog.lifecycle
        lifecycle.create_namespace("ns1")
        wordcount = lifecycle.add_artifact(SYSTEM_NAMESPACE, ArtifactInfo("wordcount", "1.0.0"))
        assert found(catalog, "wordcount") == {wordcount}
        assert found(catalog, "wordcount", namespace="ns1") == {wordcount}
        assert found(catalog, "wordcount", TargetType.ARTIFACT, namespace=SYSTEM_NAMESPACE) == {wordcount}

    def test_system_namespace_applies_to_all_kinds(self, catalog):
        shared = catalog.lifecycle.create_dataset(SYSTEM_NAMESPACE, DatasetSpec("lookup"))
        assert found(catalog, "lookup") == {shared}

    def test_unknown_namespace_is_empty(self, world):
        world.catalog.add_tags(world.app, ["shared"])
        assert found(world.catalog, "shared", namespace="nope") == set()


class TestQueryErrors:

    @pytest.mark.parametrize("query", ["", "*", "w*o", ":x", "k:"])
    def test_bad_queries(self, world, query):
        with pytest.raises(BadRequestError):
            world.catalog.search(DEFAULT_NAMESPACE, query)
