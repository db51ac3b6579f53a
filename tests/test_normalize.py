from nit.normalize import (
    basic_clean,
    fold_accents,
    fold_case,
    has_foldable,
    has_uppercase,
    split_terms,
)


def test_basic_clean_trims_whitespace():
    assert basic_clean("   Hello   world\n") == "Hello world"
    assert basic_clean("") == ""


def test_fold_accents_is_length_preserving():
    text = "Crème brûlée à la façon"
    folded = fold_accents(text)
    assert folded == "Creme brulee a la facon"
    assert len(folded) == len(text)


def test_fold_case_is_length_preserving():
    # 'İ'.lower() expands to two code points; it must stay as-is
    text = "İstanbul NixOS"
    folded = fold_case(text)
    assert len(folded) == len(text)
    assert folded.endswith("nixos")


def test_query_inspection_helpers():
    assert has_uppercase("NixOS")
    assert not has_uppercase("nixos")
    assert has_foldable("café")
    assert not has_foldable("cafe")


def test_split_terms():
    assert split_terms("  nix   rust ") == ["nix", "rust"]
    assert split_terms("   ") == []
