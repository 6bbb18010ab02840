import pytest

from epub_narrator.text.clean import (
    CleanerOptions,
    ContentCleaner,
    decode_entities,
    slice_at_anchor,
    strip_html,
)


def test_strip_html_drops_head_style_script_and_metadata_blocks():
    html = (
        "<html><head><title>Ignored</title></head>"
        "<body><style>p {color: red}</style>"
        "<script type='text/javascript'>var x = 1;</script>"
        "<metadata><dc:title>Nope</dc:title></metadata>"
        "<p>Hello</p><p>world</p></body></html>"
    )
    assert strip_html(html) == "Hello world"


def test_strip_html_keeps_header_element_text():
    assert strip_html("<header>Part One</header><p>Text</p>") == "Part One Text"


def test_strip_html_handles_self_closing_script():
    html = '<script src="a.js"/><p>Kept</p><script>drop()</script><p>Also kept</p>'
    assert strip_html(html) == "Kept Also kept"


def test_strip_html_collapses_whitespace_and_nbsp():
    assert strip_html("<p>A&nbsp;&nbsp;\n\n  B</p>\t<br/>C") == "A B C"


def test_strip_html_preserves_vietnamese_text():
    html = "<p>Tiếng Việt có dấu: Đường phố, người, ư, ơ.</p>"
    assert strip_html(html) == "Tiếng Việt có dấu: Đường phố, người, ư, ơ."


def test_entities_are_decoded_one_layer_only():
    assert strip_html("<p>&amp;quot;Hello&amp;quot;</p>") == "&quot;Hello&quot;"
    assert decode_entities("&amp;lt;b&amp;gt;") == "&lt;b&gt;"


def test_entity_table_and_numeric_references():
    text = decode_entities("&lt;a&gt; &quot;q&quot; &apos;s&apos; &#233; &#x1EA1; &unknown;")
    assert text == "<a> \"q\" 's' \u00e9 \u1ea1 &unknown;"


def test_decoded_angle_brackets_are_not_treated_as_tags():
    assert strip_html("<p>1 &lt; 2 &gt; 0</p>") == "1 < 2 > 0"


def test_strip_html_never_raises_on_broken_markup():
    assert strip_html("<p>unterminated <b>bold <i") == "unterminated bold <i"
    assert strip_html("") == ""


def test_placeholder_prefix_is_removed():
    cleaner = ContentCleaner()
    assert cleaner.strip("<p>Chưa xác định</p><p>Nội dung chương</p>") == "Nội dung chương"


def test_slice_at_anchor_stops_at_next_anchor():
    html = '<div id="ch1"><p>First part</p></div><div id="ch2"><p>Second part</p></div>'
    first = slice_at_anchor(html, "ch1", ["ch1", "ch2"])
    second = slice_at_anchor(html, "ch2", ["ch1", "ch2"])
    assert strip_html(first) == "First part"
    assert strip_html(second) == "Second part"


def test_slice_at_anchor_without_stops_runs_to_end():
    html = '<p>Before</p><h2 name="s1">Heading</h2><p>After</p>'
    assert strip_html(slice_at_anchor(html, "s1")) == "Heading After"


def test_slice_at_anchor_ignores_lookalike_attributes():
    html = '<p data-id="x">Fake</p><p id="x">Real</p>'
    assert strip_html(slice_at_anchor(html, "x")) == "Real"


def test_missing_anchor_falls_back_to_whole_document():
    cleaner = ContentCleaner()
    html = "<p>Whole document text</p>"
    assert slice_at_anchor(html, "nowhere") is None
    assert cleaner.extract(html, "nowhere") == "Whole document text"


@pytest.mark.parametrize(
    "title",
    ["Lời cảm ơn", "LỜI CẢM ƠN", "Mục lục", "Cover", "Copyright Page", "Preface", "Về tác giả"],
)
def test_title_denylist_matches_case_insensitively(title):
    assert ContentCleaner().is_denied_title(title)


def test_title_denylist_allows_story_titles():
    cleaner = ContentCleaner()
    assert not cleaner.is_denied_title("Chương 1: Đêm mưa")
    assert not cleaner.is_denied_title("Chapter One")


def test_filename_denylist_is_shorter_than_title_list():
    cleaner = ContentCleaner()
    assert cleaner.is_denied_filename("cover.xhtml")
    assert cleaner.is_denied_filename("Front-Matter.html")
    # "preface" is only a title keyword
    assert not cleaner.is_denied_filename("preface.xhtml")


def test_title_echo_is_removed_with_trailing_punctuation():
    cleaner = ContentCleaner()
    text = cleaner.remove_title_echo("Chapter One", "Chapter One: It was a dark night.")
    assert text == "It was a dark night."


def test_title_echo_is_case_insensitive():
    cleaner = ContentCleaner()
    assert cleaner.remove_title_echo("Chương Một", "CHƯƠNG MỘT - Bắt đầu") == "Bắt đầu"


def test_title_echo_leaves_other_text_alone():
    cleaner = ContentCleaner()
    assert cleaner.remove_title_echo("Chapter One", "It began: Chapter One") == "It began: Chapter One"


def test_content_is_capped():
    cleaner = ContentCleaner(CleanerOptions(max_chars=10))
    assert cleaner.clean_chapter("T", "<p>" + "x" * 50 + "</p>") == "x" * 10


def test_cleaner_options_validate_and_fold_keywords():
    with pytest.raises(ValueError):
        CleanerOptions(max_chars=0)
    options = CleanerOptions(title_denylist=["PROLOGUE"])
    assert options.title_denylist == ("prologue",)
    assert ContentCleaner(options).is_denied_title("Prologue")
