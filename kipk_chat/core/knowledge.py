"""Static knowledge base about KIPK, Universitas Kuningan and the KIPK student forum.

The base is built once per process and never mutated afterwards; every
container below is a tuple so a shared reference can be handed to the
matcher and the AI prompt builder without copying.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable


class Topic(str, Enum):
    KIPK = "kipk"
    UNIVERSITY = "universitas_kuningan"
    FORUM = "forum_mahasiswa_kipk"


@dataclass(frozen=True)
class Section:
    label: str
    content: str


@dataclass(frozen=True)
class TopicEntry:
    topic: Topic
    title: str
    triggers: tuple[str, ...]
    sections: tuple[Section, ...]


@dataclass(frozen=True)
class KnowledgeBase:
    entries: tuple[TopicEntry, ...]

    def entry(self, topic: Topic) -> TopicEntry | None:
        for entry in self.entries:
            if entry.topic is topic:
                return entry
        return None

    def as_prompt_text(self) -> str:
        blocks: list[str] = []
        for entry in self.entries:
            payload = {section.label: section.content for section in entry.sections}
            blocks.append(f"Informasi {entry.title}:\n{json.dumps(payload, ensure_ascii=False)}")
        return "\n\n".join(blocks)


def _materialize(content: Any) -> str:
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, (list, tuple)):
        return ", ".join(str(item).strip() for item in content if str(item).strip())
    raise ValueError(f"unsupported section content: {type(content).__name__}")


def _sections(pairs: Iterable[tuple[str, Any]]) -> tuple[Section, ...]:
    return tuple(Section(label=label.strip().lower(), content=_materialize(content)) for label, content in pairs)


_FACULTIES = [
    "Fakultas Keguruan dan Ilmu Pendidikan",
    "Fakultas Ekonomi",
    "Fakultas Kehutanan",
    "Fakultas Hukum",
    "Fakultas Komputer",
    "Fakultas Pertanian",
    "Program Pascasarjana",
]


def default_knowledge_base() -> KnowledgeBase:
    kipk = TopicEntry(
        topic=Topic.KIPK,
        title="KIPK",
        triggers=("kipk", "kip", "beasiswa", "bantuan kuliah"),
        sections=_sections(
            [
                (
                    "syarat",
                    "Syarat pendaftaran KIPK: 1) Memiliki NIK/KK aktif, 2) Mempunyai prestasi akademik/non-akademik, "
                    "3) Kondisi ekonomi kurang mampu dibuktikan dengan SKTM, 4) Melampirkan slip gaji/penghasilan "
                    "orang tua, 5) Bukti pembayaran listrik dan PBB.",
                ),
                (
                    "cara daftar",
                    "Pendaftaran KIPK dilakukan melalui laman https://kip-kuliah.kemdikbud.go.id/ dengan langkah: "
                    "1) Registrasi akun, 2) Isi formulir data diri, 3) Unggah dokumen persyaratan, 4) Cetak dan "
                    "simpan nomor pendaftaran.",
                ),
                (
                    "manfaat",
                    "Manfaat KIPK meliputi biaya kuliah dan bantuan biaya hidup selama masa studi standar, dengan "
                    "besaran bervariasi berdasarkan daerah dan tingkat kemiskinan.",
                ),
                (
                    "deadline",
                    "Pendaftaran KIPK biasanya dibuka pada awal tahun untuk digunakan pada tahun ajaran berikutnya. "
                    "Pastikan mengecek website resmi untuk jadwal terupdate.",
                ),
                (
                    "akademik",
                    "Persyaratan akademik KIPK adalah memiliki nilai rata-rata minimal sesuai dengan ketentuan atau "
                    "prestasi non-akademik yang diakui tingkat nasional.",
                ),
                (
                    "deskripsi",
                    "KIPK (Kartu Indonesia Pintar Kuliah) adalah program beasiswa dari pemerintah untuk mahasiswa "
                    "kurang mampu secara ekonomi tetapi memiliki potensi akademik baik.",
                ),
            ]
        ),
    )
    university = TopicEntry(
        topic=Topic.UNIVERSITY,
        title="Universitas Kuningan",
        triggers=("uniku", "universitas", "kuningan", "kampus"),
        sections=_sections(
            [
                (
                    "jurusan",
                    f"Universitas Kuningan memiliki beberapa fakultas yaitu: {_materialize(_FACULTIES)}.",
                ),
                (
                    "pendaftaran",
                    "Pendaftaran di Universitas Kuningan dapat dilakukan melalui jalur SNBP, SNBT, atau jalur mandiri. "
                    "Untuk informasi lengkap, kunjungi https://uniku.ac.id/pendaftaran/",
                ),
                (
                    "kontak",
                    "Informasi lebih lanjut dapat diperoleh melalui email: info@uniku.ac.id atau telepon: (0232) 123456",
                ),
                (
                    "lokasi",
                    "Kampus Universitas Kuningan berlokasi di Jl. Siliwangi No. 123, Kuningan, Jawa Barat 45513",
                ),
                (
                    "kipk",
                    "Universitas Kuningan menerima mahasiswa jalur KIPK di semua program studi. Terdapat kuota khusus "
                    "untuk mahasiswa KIPK setiap tahunnya.",
                ),
                (
                    "profil",
                    "Universitas Kuningan (UNIKU) adalah perguruan tinggi negeri yang berlokasi di Kabupaten Kuningan, "
                    "Jawa Barat. Kampus ini berdiri sejak tahun 2008 dan terus berkembang menjadi salah satu "
                    "universitas terkemuka di wilayah III Cirebon.",
                ),
            ]
        ),
    )
    forum = TopicEntry(
        topic=Topic.FORUM,
        title="Forum Mahasiswa KIPK",
        triggers=("forum", "organisasi", "forkipku", "kegiatan mahasiswa"),
        sections=_sections(
            [
                (
                    "kegiatan",
                    "Kegiatan forum meliputi pendampingan akademik, pelatihan soft skill, mentoring, dan pengabdian "
                    "masyarakat.",
                ),
                (
                    "kontak",
                    "Forum dapat dihubungi melalui email: forumkipk@uniku.ac.id atau Instagram: @forumkipkuniku",
                ),
                (
                    "aspirasi",
                    "Aspirasi dan keluhan dapat disampaikan melalui formulir online di website forum atau langsung ke "
                    "pengurus forum.",
                ),
                (
                    "deskripsi",
                    "Forum Mahasiswa KIPK Universitas Kuningan adalah organisasi yang menaungi seluruh mahasiswa "
                    "penerima KIPK di Universitas Kuningan.",
                ),
            ]
        ),
    )
    return KnowledgeBase(entries=(kipk, university, forum))


def load_knowledge_base(path: str | Path) -> KnowledgeBase:
    """Load a knowledge base from JSON.

    Expected shape::

        {"kipk": {"title": "KIPK", "triggers": ["kipk", ...],
                  "sections": [["syarat", "..."], ["jurusan", ["a", "b"]]]}, ...}

    Topics missing from the file are omitted; topic order always follows ``Topic``.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("knowledge base file must contain a JSON object")
    entries: list[TopicEntry] = []
    for topic in Topic:
        item = raw.get(topic.value)
        if item is None:
            continue
        if not isinstance(item, dict):
            raise ValueError(f"topic {topic.value} must be an object")
        triggers = item.get("triggers") or []
        sections = item.get("sections") or []
        if not isinstance(triggers, list) or not isinstance(sections, list):
            raise ValueError(f"topic {topic.value} needs list-valued triggers and sections")
        pairs: list[tuple[str, Any]] = []
        for section in sections:
            if not isinstance(section, list) or len(section) != 2 or not isinstance(section[0], str):
                raise ValueError(f"topic {topic.value} has a malformed section: {section!r}")
            pairs.append((section[0], section[1]))
        entries.append(
            TopicEntry(
                topic=topic,
                title=str(item.get("title") or topic.value),
                triggers=tuple(str(trigger).strip().lower() for trigger in triggers if str(trigger).strip()),
                sections=_sections(pairs),
            )
        )
    return KnowledgeBase(entries=tuple(entries))


_knowledge: dict[str, KnowledgeBase] = {}


def get_knowledge_base(path: str = "") -> KnowledgeBase:
    """Load once per path; an empty path means the built-in corpus."""
    knowledge = _knowledge.get(path)
    if knowledge is None:
        knowledge = load_knowledge_base(path) if path else default_knowledge_base()
        _knowledge[path] = knowledge
    return knowledge
