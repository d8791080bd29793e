from naming_templates import (
    DEFAULT_FILE_TEMPLATE,
    DEFAULT_FOLDER_TEMPLATE,
    file_name,
    first_char,
    folder_segments,
    render_template,
    safe_segment,
)


def test_default_templates():
    assert render_template(DEFAULT_FOLDER_TEMPLATE, "Movie One", None, 1999, "mkv") == "M"
    assert render_template(DEFAULT_FILE_TEMPLATE, "Amelie", "Le Fabuleux Destin", 2001, ".mkv") == "Amelie (Le Fabuleux Destin) 2001.mkv"


def test_tokens_are_case_insensitive_and_aliases_work():
    assert render_template("{name} / {YEAR}", "Heat", None, 1995, None) == "Heat / 1995"
    assert render_template("{MovieName[0]}/{MovieName}", "Heat", None, None, None) == "H/Heat"


def test_missing_values_render_empty_and_unknown_tokens_stay():
    assert render_template("{Name} ({Year}) {Resolution}", "Heat", None, None, "mkv") == "Heat () {Resolution}"
    assert first_char("   ") == "_"
    assert render_template("{Name[0]}", None, None, None, None) == "_"


def test_sanitising_segments():
    assert safe_segment('Alien: Director\'s Cut?') == "Alien_ Director's Cut_"
    assert safe_segment("trailing dots...") == "trailing dots"
    assert safe_segment("") == "_"
    long = safe_segment("x" * 300, maxlen=40)
    assert len(long) == 40
    assert long.startswith("x" * 31 + "_")


def test_folder_template_may_nest():
    assert folder_segments("M/Movie One", sanitize=True) == ["M", "Movie One"]
    assert folder_segments(r"M\\Movie: One", sanitize=True) == ["M", "Movie_ One"]
    assert folder_segments("M/Movie: One", sanitize=False) == ["M", "Movie: One"]
    assert folder_segments("", sanitize=True) == []


def test_file_name_sanitising_is_optional():
    assert file_name("What? (2000).mkv", sanitize=True) == "What_ (2000).mkv"
    assert file_name(" What? (2000).mkv ", sanitize=False) == "What? (2000).mkv"


def test_separators_in_values_can_be_escaped():
    assert render_template("{Name[0]}/{Name}", "Face/Off", None, None, None) == "F/Face/Off"
    assert render_template("{Name[0]}/{Name}", "Face/Off", None, None, None, escape_separators=True) == "F/Face_Off"
    assert render_template("{Name} {OriginalName}", "A", r"B\C", None, None, escape_separators=True) == "A B_C"
