import dataclasses
import json

import pytest

from kipk_chat.core import knowledge as knowledge_module
from kipk_chat.core.knowledge import Topic, default_knowledge_base, get_knowledge_base, load_knowledge_base


def test_default_base_keeps_topic_and_section_order(knowledge):
    assert [entry.topic for entry in knowledge.entries] == [Topic.KIPK, Topic.UNIVERSITY, Topic.FORUM]
    kipk = knowledge.entry(Topic.KIPK)
    assert [section.label for section in kipk.sections] == [
        "syarat",
        "cara daftar",
        "manfaat",
        "deadline",
        "akademik",
        "deskripsi",
    ]


def test_faculty_list_is_materialized_to_text(knowledge):
    jurusan = knowledge.entry(Topic.UNIVERSITY).sections[0]
    assert jurusan.label == "jurusan"
    assert isinstance(jurusan.content, str)
    assert "Fakultas Hukum, Fakultas Komputer" in jurusan.content


def test_knowledge_base_is_immutable(knowledge):
    with pytest.raises(dataclasses.FrozenInstanceError):
        knowledge.entries = ()
    assert isinstance(knowledge.entry(Topic.FORUM).sections, tuple)


def test_prompt_text_contains_every_section(knowledge):
    text = knowledge.as_prompt_text()
    for entry in knowledge.entries:
        assert f"Informasi {entry.title}:" in text
        for section in entry.sections:
            assert section.content in text


def test_load_knowledge_base_from_json(tmp_path):
    path = tmp_path / "kb.json"
    path.write_text(
        json.dumps(
            {
                "forum_mahasiswa_kipk": {
                    "title": "Forum",
                    "triggers": ["Forum"],
                    "sections": [["Kontak", "Email forum"]],
                },
                "kipk": {
                    "title": "KIPK",
                    "triggers": ["kipk"],
                    "sections": [["syarat", ["NIK", "SKTM"]]],
                },
            }
        ),
        encoding="utf-8",
    )

    base = load_knowledge_base(path)

    assert [entry.topic for entry in base.entries] == [Topic.KIPK, Topic.FORUM]
    assert base.entry(Topic.KIPK).sections[0].content == "NIK, SKTM"
    assert base.entry(Topic.FORUM).triggers == ("forum",)
    assert base.entry(Topic.FORUM).sections[0].label == "kontak"
    assert base.entry(Topic.UNIVERSITY) is None


def test_load_knowledge_base_rejects_malformed_sections(tmp_path):
    path = tmp_path / "kb.json"
    path.write_text(json.dumps({"kipk": {"triggers": ["kipk"], "sections": [["only-label"]]}}), encoding="utf-8")

    with pytest.raises(ValueError):
        load_knowledge_base(path)


def test_default_base_is_rebuilt_equal():
    assert default_knowledge_base() == default_knowledge_base()


def test_get_knowledge_base_caches_per_path(tmp_path, monkeypatch):
    monkeypatch.setattr(knowledge_module, "_knowledge", {})
    first, second = tmp_path / "first.json", tmp_path / "second.json"
    first.write_text(json.dumps({"kipk": {"triggers": ["kipk"], "sections": [["syarat", "NIK"]]}}), encoding="utf-8")
    second.write_text(json.dumps({"forum_mahasiswa_kipk": {"triggers": ["forum"], "sections": [["kontak", "Email"]]}}), encoding="utf-8")

    base_first = get_knowledge_base(str(first))
    base_second = get_knowledge_base(str(second))

    assert [entry.topic for entry in base_first.entries] == [Topic.KIPK]
    assert [entry.topic for entry in base_second.entries] == [Topic.FORUM]
    assert get_knowledge_base(str(first)) is base_first
    assert get_knowledge_base() == default_knowledge_base()
