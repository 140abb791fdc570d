"""路径命名工具的单元测试。"""

import pytest

from app.packages.portal.utils.path_utils import (
    document_filename,
    join_path,
    resolve_collision,
    slugify,
    split_extension,
    with_suffix,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Agreements 2024", "agreements-2024"),
        ("  Ressources Humaines  ", "ressources-humaines"),
        ("Été / Hiver", "ete-hiver"),
        ("Q1__Report!!", "q1-report"),
        ("---", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_slugify(raw, expected):
    assert slugify(raw) == expected


@pytest.mark.parametrize("raw", ["Agreements 2024", "Ça va? Très bien!", "a--b", "ÅÄÖ ßtraße", "__x__"])
def test_slugify_is_idempotent(raw):
    once = slugify(raw)
    assert slugify(once) == once


def test_join_path_skips_empty_segments():
    assert join_path("enterprises/", "", None, "/acme/", "legal") == "enterprises/acme/legal"


def test_document_filename_slugs_stem_and_lowers_extension():
    assert document_filename("NDA.PDF") == "nda.pdf"
    assert document_filename("Rapport Annuel 2023.docx") == "rapport-annuel-2023.docx"
    assert document_filename("%%%.txt") == "document.txt"
    assert document_filename("README") == "readme"


def test_split_extension_handles_dotfiles_and_paths():
    assert split_extension("dir/sub/Report.Final.XLSX") == ("Report.Final", "xlsx")
    assert split_extension(".env") == (".env", "")


def test_with_suffix_goes_before_extension():
    assert with_suffix("nda.pdf", 7) == "nda-7.pdf"
    assert with_suffix("contracts", 12) == "contracts-12"


def test_resolve_collision_returns_plain_path_when_free():
    assert resolve_collision("enterprises/acme", "legal", lambda p: False, 3) == "enterprises/acme/legal"


def test_resolve_collision_suffixes_entity_id_once():
    occupied = {"root/contracts", "root/contracts-5"}
    # 带后缀的路径也被占用时不再重试
    assert resolve_collision("root", "contracts", occupied.__contains__, 5) == "root/contracts-5"


def test_resolve_collision_is_unique_for_distinct_entities():
    occupied: set[str] = set()
    paths = []
    for entity_id in (11, 12, 13):
        path = resolve_collision("root", "same-name", occupied.__contains__, entity_id)
        occupied.add(path)
        paths.append(path)
    assert len(set(paths)) == 3
    assert paths[0] == "root/same-name"
