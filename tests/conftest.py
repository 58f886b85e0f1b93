"""
Shared pytest fixtures for metacatalog tests.

Every fixture runs against a real SQLite-backed catalog in tmp_path.
"""

from types import SimpleNamespace

import pytest

from metacatalog.api import MetadataCatalog
from metacatalog.entity import DEFAULT_NAMESPACE, DatasetId, ProgramType, StreamId
from metacatalog.specs import (
    ApplicationSpec,
    ArtifactInfo,
    DatasetSpec,
    PluginClass,
    ProgramSpec,
    ScheduleSpec,
    StreamSpec,
    ViewSpec,
)


@pytest.fixture(autouse=True)
def isolated_store_env(tmp_path, monkeypatch):
    """Keep error logs and default stores out of the user's home."""
    monkeypatch.setenv("METACATALOG_STORE_PATH", str(tmp_path / "default-store"))


@pytest.fixture
def catalog(tmp_path):
    """An empty catalog; only the default and system namespaces exist."""
    c = MetadataCatalog(tmp_path / "store")
    yield c
    c.close()


def app_with_dataset_spec() -> ApplicationSpec:
    return ApplicationSpec(
        name="AppWithDataset",
        main_class="co.example.apps.AppWithDataset",
        programs=[ProgramSpec(ProgramType.SERVICE, "PingService")],
        streams=[StreamSpec("mystream")],
        datasets=[DatasetSpec("myds", type="co.example.dataset.KeyValueTable")],
    )


def word_count_spec(with_flow: bool = True) -> ApplicationSpec:
    programs = [ProgramSpec(ProgramType.MAPREDUCE, "VoidMapReduceJob")]
    if with_flow:
        programs.append(ProgramSpec(ProgramType.FLOW, "WordCountFlow"))
    return ApplicationSpec(
        name="WordCountApp",
        main_class="co.example.apps.WordCountApp",
        programs=programs,
        streams=[StreamSpec("text")],
        datasets=[DatasetSpec("mydataset", type="co.example.dataset.KeyValueTable")],
    )


def all_programs_spec() -> ApplicationSpec:
    return ApplicationSpec(
        name="App",
        main_class="co.example.apps.AllProgramsApp",
        programs=[
            ProgramSpec(ProgramType.FLOW, "NoOpFlow"),
            ProgramSpec(ProgramType.MAPREDUCE, "NoOpMR"),
            ProgramSpec(ProgramType.SERVICE, "NoOpService"),
            ProgramSpec(ProgramType.SPARK, "NoOpSpark"),
            ProgramSpec(ProgramType.WORKER, "NoOpWorker"),
            ProgramSpec(
                ProgramType.WORKFLOW, "NoOpWorkflow",
                nodes=["co.example.apps.NoOpAction", "NoOpMR"],
            ),
        ],
        schedules=[ScheduleSpec("SampleSchedule", "EveryMinute", program="NoOpWorkflow")],
        streams=[StreamSpec("text")],
        datasets=[
            DatasetSpec("kvt", type="co.example.dataset.KeyValueTable"),
            DatasetSpec(
                "dsWithSchema",
                type="co.example.dataset.ObjectMappedTable",
                schema={
                    "type": "record",
                    "name": "rec",
                    "fields": [
                        {"name": "field1", "type": "string"},
                        {"name": "field2", "type": ["null", "int"]},
                    ],
                },
            ),
        ],
    )


VIEW_SCHEMA = {
    "type": "record",
    "name": "record",
    "fields": [{"name": "viewBody", "type": ["bytes", "null"]}],
}


@pytest.fixture
def world(catalog):
    """
    The default namespace with one application and its data.

    AppWithDataset (service PingService), stream mystream with view myview,
    dataset myds and artifact appwithdataset-1.0.0.
    """
    lifecycle = catalog.lifecycle
    app = lifecycle.deploy_application(DEFAULT_NAMESPACE, app_with_dataset_spec())
    ping = app.program(ProgramType.SERVICE, "PingService")
    stream = StreamId(DEFAULT_NAMESPACE, "mystream")
    view = stream.view("myview")
    lifecycle.create_or_update_view(view, ViewSpec("myview", format="csv"))
    artifact = lifecycle.add_artifact(
        DEFAULT_NAMESPACE,
        ArtifactInfo("appwithdataset", "1.0.0", app_classes=["co.example.apps.AppWithDataset"]),
    )
    return SimpleNamespace(
        catalog=catalog,
        app=app,
        ping=ping,
        stream=stream,
        view=view,
        dataset=DatasetId(DEFAULT_NAMESPACE, "myds"),
        artifact=artifact,
    )


@pytest.fixture
def all_programs(catalog):
    """AllProgramsApp deployed in default, with its artifact and a plugin artifact."""
    lifecycle = catalog.lifecycle
    app = lifecycle.deploy_application(DEFAULT_NAMESPACE, all_programs_spec())
    artifact = lifecycle.add_artifact(
        DEFAULT_NAMESPACE,
        ArtifactInfo("AllProgramsApp", "1.0.0", app_classes=["co.example.apps.AllProgramsApp"]),
    )
    plugins = lifecycle.add_artifact(
        DEFAULT_NAMESPACE,
        ArtifactInfo("plugins", "1.0.0", plugins=[
            PluginClass("Pluggable", "Transform", class_name="co.example.plugins.Pluggable"),
        ]),
    )
    return SimpleNamespace(catalog=catalog, app=app, artifact=artifact, plugins=plugins)
