from concurrent.futures import ThreadPoolExecutor
import threading
import json
from pathlib import Path

import pytest

from nbclassifier.common import storage
from nbclassifier.model import registry as registry_module
from nbclassifier.model.errors import (
    FormatError,
    ModelConflictError,
    ModelNotFoundError,
    NotTrainedError,
    StorageError,
)
from nbclassifier.model.naivebayes import Model
from nbclassifier.model.observation import Observation
from nbclassifier.model.registry import ModelRegistry


@pytest.fixture
def model_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "models"
    directory.mkdir()
    return directory


@pytest.fixture
def registry(model_dir: Path) -> ModelRegistry:
    return ModelRegistry(model_dir)


def trained(name: str, *texts: tuple[list[str], str]) -> Model:
    model = Model(name=name)
    for classes, text in texts:
        model.train(Observation.from_text(classes, text))
    return model


def test_create_persists_and_caches(registry: ModelRegistry, model_dir: Path):
    created = registry.create(Model(name="demo"))

    assert created == Model(name="demo")
    assert (model_dir / "demo.json").is_file()
    assert storage.load(model_dir / "demo.json", Model) == created
    assert registry.get("demo") is created
    assert len(registry) == 1


def test_create_twice_raises_conflict(registry: ModelRegistry):
    registry.create(Model(name="dup"))

    with pytest.raises(ModelConflictError):
        registry.create(Model(name="dup"))


def test_create_conflicts_with_model_only_on_disk(model_dir: Path):
    ModelRegistry(model_dir).create(Model(name="dup"))

    with pytest.raises(ModelConflictError):
        ModelRegistry(model_dir).create(Model(name="dup"))


def test_create_with_overwrite_replaces_cache_and_storage(
    registry: ModelRegistry, model_dir: Path
):
    registry.create(Model(name="dup"))
    replacement = trained("dup", (["test"], "extra data"))

    registry.create(replacement, overwrite=True)

    assert registry.get("dup") == replacement
    assert storage.load(model_dir / "dup.json", Model) == replacement


def test_create_rejects_names_unusable_as_file_names(registry: ModelRegistry):
    for name in ("", "../escape", "a/b", ".hidden"):
        with pytest.raises(FormatError):
            registry.create(Model(name=name))

    assert len(registry) == 0


def test_create_keeps_cache_unchanged_when_save_fails(
    registry: ModelRegistry, monkeypatch: pytest.MonkeyPatch
):
    def failing_save(path: Path, value: Model) -> None:
        raise StorageError(f"Failed to save file {path}")

    monkeypatch.setattr(registry_module.storage, "save", failing_save)

    with pytest.raises(StorageError):
        registry.create(Model(name="demo"))

    assert len(registry) == 0


def test_get_falls_back_to_file(model_dir: Path):
    stored = trained("stored", (["a"], "x y"))
    storage.save(model_dir / "stored.json", stored)
    registry = ModelRegistry(model_dir)

    assert len(registry) == 0
    assert registry.get("stored") == stored
    assert len(registry) == 1


def test_get_missing_model_returns_none(registry: ModelRegistry):
    assert registry.get("missing") is None
    assert len(registry) == 0


def test_get_corrupt_file_returns_none(registry: ModelRegistry, model_dir: Path):
    (model_dir / "corrupt.json").write_text("{]{]{]this is not valid json![}[}[}")

    assert registry.get("corrupt") is None
    assert len(registry) == 0


def test_get_file_holding_another_model_returns_none(
    registry: ModelRegistry, model_dir: Path
):
    storage.save(model_dir / "alias.json", Model(name="original"))

    assert registry.get("alias") is None


def test_list_returns_only_cached_models_sorted(registry: ModelRegistry, model_dir: Path):
    registry.create(Model(name="zeta"))
    registry.create(Model(name="alpha"))
    storage.save(model_dir / "disk_only.json", Model(name="disk_only"))

    assert [model.name for model in registry.list()] == ["alpha", "zeta"]


def test_list_load_all_reads_every_file(registry: ModelRegistry, model_dir: Path):
    registry.create(Model(name="cached"))
    storage.save(model_dir / "disk_only.json", Model(name="disk_only"))
    storage.save(model_dir / "mismatch.json", Model(name="other"))
    (model_dir / "corrupt.json").write_text("not json")
    (model_dir / "notes.txt").write_text("ignored")

    models = registry.list(load_all=True)

    assert [model.name for model in models] == ["cached", "disk_only"]


def test_load_all_keeps_newer_cached_models(registry: ModelRegistry, model_dir: Path):
    registry.create(Model(name="demo"))
    cached = registry.get("demo")
    storage.save(model_dir / "demo.json", trained("demo", (["a"], "stale")))

    assert registry.load_all() == 0
    assert registry.get("demo") is cached


def test_train_updates_and_persists(registry: ModelRegistry, model_dir: Path):
    registry.create(Model(name="demo"))
    observation = Observation.from_text(["testing"], "test observation")

    result = registry.train("demo", observation)

    expected = trained("demo", (["testing"], "test observation"))
    assert result == expected
    assert registry.get("demo") == expected
    assert storage.load(model_dir / "demo.json", Model) == expected


def test_train_does_not_mutate_published_snapshot(registry: ModelRegistry):
    registry.create(Model(name="demo"))
    snapshot = registry.get("demo")
    assert snapshot is not None

    registry.train("demo", Observation.from_text(["a"], "word"))

    assert snapshot.observation_count == 0
    assert snapshot.classes == {}


def test_train_missing_model_raises_without_touching_cache(
    registry: ModelRegistry, model_dir: Path
):
    registry.create(Model(name="present"))

    with pytest.raises(ModelNotFoundError):
        registry.train("missing", Observation.from_text(["a"], "word"))

    assert [model.name for model in registry.list()] == ["present"]
    assert not (model_dir / "missing.json").exists()


def test_train_keeps_cache_unchanged_when_save_fails(
    registry: ModelRegistry, monkeypatch: pytest.MonkeyPatch
):
    registry.create(Model(name="demo"))

    def failing_save(path: Path, value: Model) -> None:
        raise StorageError(f"Failed to save file {path}")

    monkeypatch.setattr(registry_module.storage, "save", failing_save)

    with pytest.raises(StorageError):
        registry.train("demo", Observation.from_text(["a"], "word"))

    assert registry.get("demo") == Model(name="demo")


def test_concurrent_training_loses_no_updates(registry: ModelRegistry, model_dir: Path):
    registry.create(Model(name="busy"))
    workers, trains_per_worker = 8, 25

    def train_many(worker: int) -> None:
        for _ in range(trains_per_worker):
            registry.train("busy", Observation.from_text([f"c{worker % 2}"], "shared word"))

    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(train_many, range(workers)))

    total = workers * trains_per_worker
    model = registry.get("busy")
    assert model is not None
    assert model.observation_count == total
    assert sum(c.observation_count for c in model.classes.values()) == total
    assert model.classes["c0"].word_counts["shared"] == total // 2
    assert storage.load(model_dir / "busy.json", Model) == model


def test_predict_worked_example(registry: ModelRegistry):
    registry.create(Model(name="demo"))
    for classes, text in [
        (["China"], "Chinese Beijing Chinese"),
        (["China"], "Chinese Chinese Shanghai"),
        (["China"], "Chinese Macao"),
        (["NotChina"], "Tokyo Japan Chinese"),
    ]:
        registry.train("demo", Observation.from_text(classes, text))

    prediction = registry.predict(
        "demo", Observation.from_text([], "Chinese Chinese Chinese Tokyo Japan")
    )

    assert prediction["China"] == pytest.approx(0.00030121377997263)
    assert prediction["NotChina"] == pytest.approx(0.00013548070246744215)
    assert prediction.best_fit()[0] == "China"


def test_predict_does_not_persist(registry: ModelRegistry, model_dir: Path):
    registry.create(trained("demo", (["a"], "x")))
    before = (model_dir / "demo.json").read_text()

    registry.predict("demo", Observation.from_text(["b"], "y"))

    assert (model_dir / "demo.json").read_text() == before


def test_predict_missing_model_raises(registry: ModelRegistry):
    with pytest.raises(ModelNotFoundError):
        registry.predict("missing", Observation.from_text([], "word"))

    assert len(registry) == 0


def test_predict_untrained_model_raises(registry: ModelRegistry):
    registry.create(Model(name="fresh"))

    with pytest.raises(NotTrainedError):
        registry.predict("fresh", Observation.from_text([], "word"))


def test_delete_removes_cache_entry_and_file(registry: ModelRegistry, model_dir: Path):
    registry.create(Model(name="doomed"))

    registry.delete("doomed")

    assert len(registry) == 0
    assert not (model_dir / "doomed.json").exists()
    assert registry.get("doomed") is None


def test_delete_model_only_on_disk(registry: ModelRegistry, model_dir: Path):
    (model_dir / "disk_only.json").write_text(json.dumps({"name": "disk_only"}))

    registry.delete("disk_only")

    assert not (model_dir / "disk_only.json").exists()


def test_delete_missing_model_raises(registry: ModelRegistry):
    with pytest.raises(ModelNotFoundError):
        registry.delete("missing")


def test_delete_during_file_load_leaves_no_stale_model(
    registry: ModelRegistry, model_dir: Path, monkeypatch: pytest.MonkeyPatch
):
    storage.save(model_dir / "racy.json", trained("racy", (["a"], "word")))
    real_load = storage.load
    loaded = threading.Event()
    deleted = threading.Event()

    def slow_load(path: Path, value_type: type[Model]) -> Model:
        model = real_load(path, value_type)
        loaded.set()
        # Give a concurrent delete the chance to run before the model is cached.
        deleted.wait(timeout=0.5)
        return model

    monkeypatch.setattr(registry_module.storage, "load", slow_load)

    def delete_after_load_started() -> None:
        loaded.wait(timeout=5)
        registry.delete("racy")
        deleted.set()

    with ThreadPoolExecutor(max_workers=2) as pool:
        getter = pool.submit(registry.get, "racy")
        deleter = pool.submit(delete_after_load_started)
        getter.result()
        deleter.result()

    assert registry.list() == []
    assert registry.get("racy") is None
    assert not (model_dir / "racy.json").exists()


def test_delete_during_load_all_leaves_no_stale_model(
    registry: ModelRegistry, model_dir: Path, monkeypatch: pytest.MonkeyPatch
):
    storage.save(model_dir / "racy.json", Model(name="racy"))
    real_load = storage.load
    loaded = threading.Event()
    deleted = threading.Event()

    def slow_load(path: Path, value_type: type[Model]) -> Model:
        model = real_load(path, value_type)
        loaded.set()
        deleted.wait(timeout=0.5)
        return model

    monkeypatch.setattr(registry_module.storage, "load", slow_load)

    def delete_after_load_started() -> None:
        loaded.wait(timeout=5)
        registry.delete("racy")
        deleted.set()

    with ThreadPoolExecutor(max_workers=2) as pool:
        loader = pool.submit(registry.load_all)
        deleter = pool.submit(delete_after_load_started)
        loader.result()
        deleter.result()

    assert registry.list() == []
    assert not (model_dir / "racy.json").exists()


def test_name_locks_are_released_after_each_operation(registry: ModelRegistry):
    registry.create(Model(name="demo"))
    registry.train("demo", Observation.from_text(["a"], "word"))
    registry.get("missing")
    registry.list(load_all=True)

    for name in ("missing", "also-missing"):
        with pytest.raises(ModelNotFoundError):
            registry.train(name, Observation.from_text(["a"], "word"))
        with pytest.raises(ModelNotFoundError):
            registry.delete(name)

    with pytest.raises(FormatError):
        registry.train("../escape", Observation.from_text(["a"], "word"))

    registry.delete("demo")

    assert registry._name_locks == {}


def test_contended_name_lock_is_released_afterwards(registry: ModelRegistry):
    registry.create(Model(name="busy"))
    workers, trains_per_worker = 4, 10

    def train_many(_: int) -> None:
        for _ in range(trains_per_worker):
            registry.train("busy", Observation.from_text(["a"], "word"))

    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(train_many, range(workers)))

    model = registry.get("busy")
    assert model is not None
    assert model.observation_count == workers * trains_per_worker
    assert registry._name_locks == {}
