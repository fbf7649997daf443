from __future__ import annotations

import pytest

from ftms_lab.peak_model import ProfileSelection
from ftms_lab.settings import SettingsStore, load_settings
from qt_app.adapters.profile_adapter import ProfileAdapter


@pytest.fixture
def adapter(sample_dir):
    a = ProfileAdapter({"max_workers": 1})
    a.set_result(a.load_batch(sample_dir), sample_dir)
    return a


def test_empty_adapter():
    a = ProfileAdapter()
    assert not a.has_data
    assert a.options() == {"Class": [], "DBE": [], "C": []}
    assert a.unlabeled_samples() == []
    with pytest.raises(ValueError):
        a.build_profile(ProfileSelection())
    assert a.settings["header_skip_rows"] == 6


def test_loaded_batch(adapter, sample_dir):
    assert adapter.has_data
    assert adapter.data_dir == sample_dir
    assert adapter.options()["Class"] == ["CH", "NO2", "O2", "O2S"]

    profile = adapter.build_profile(ProfileSelection(class_filter=frozenset({"O2"})))
    assert set(profile["Parameter"]) == {"O2"}
    assert profile["Group"].isna().all()


def test_labels_assign_groups(adapter, tmp_path):
    path = tmp_path / "labels.csv"
    path.write_text("Sample,Group\nS1.xlsx,control\n", encoding="utf-8")
    adapter.load_labels(path)

    assert adapter.unlabeled_samples() == ["S2"]
    profile = adapter.build_profile(ProfileSelection(group_dimension="C"))
    assert set(profile.loc[profile["Sample"] == "S1", "Group"]) == {"control"}
    assert profile.loc[profile["Sample"] == "S2", "Group"].isna().all()


def test_exports(adapter, tmp_path):
    written = adapter.export_tables(tmp_path / "tables", fmt="csv")
    assert len(written) == 3
    path = adapter.export_profile(ProfileSelection(), tmp_path / "profile.csv")
    assert path.exists()

    adapter.reset()
    assert not adapter.has_data
    with pytest.raises(ValueError):
        adapter.export_tables(tmp_path)


def test_saving_settings_keeps_recent_folders(tmp_path, monkeypatch):
    monkeypatch.setenv("APPDATA", str(tmp_path))
    store = SettingsStore()
    adapter = ProfileAdapter(store=store)
    adapter.persist_settings()

    store.add_recent_dir("/data/run1")
    adapter.settings["last_label_path"] = "/data/labels.csv"
    adapter.persist_settings()

    saved = load_settings()
    assert saved["recent_data_dirs"] == ["/data/run1"]
    assert saved["last_label_path"] == "/data/labels.csv"


def test_group_dimension_is_persisted(tmp_path, monkeypatch):
    monkeypatch.setenv("APPDATA", str(tmp_path))
    adapter = ProfileAdapter(store=SettingsStore())

    adapter.set_group_dimension("DBE")
    assert load_settings()["group_dimension"] == "DBE"
    assert ProfileAdapter(store=SettingsStore()).settings["group_dimension"] == "DBE"

    with pytest.raises(ValueError):
        adapter.set_group_dimension("Mass")
