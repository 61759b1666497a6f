"""Tests for cloze span parsing and locator assignment."""

from memocloze.services.locator import ParsePass, condense, parse_clozes


def test_auto_ids_skip_explicit_locators():
    text = "The --mitochondria-- is the --[custom] powerhouse-- of the --cell--."
    spans = parse_clozes(text)
    assert [s.locator for s in spans] == ["auto-0", "custom", "auto-1"]
    assert [s.content for s in spans] == ["mitochondria", "powerhouse", "cell"]


def test_parse_is_reproducible():
    text = "--a-- --[x] b-- --c--"
    assert parse_clozes(text) == parse_clozes(text)


def test_counter_resets_each_pass():
    first = parse_clozes("--one-- --two--")
    second = parse_clozes("--three--")
    assert [s.locator for s in first] == ["auto-0", "auto-1"]
    assert [s.locator for s in second] == ["auto-0"]


def test_threaded_parse_pass_continues_numbering():
    state = ParsePass()
    parse_clozes("--one-- --two--", state)
    spans = parse_clozes("--three--", state)
    assert spans[0].locator == "auto-2"


def test_audio_annotation():
    spans = parse_clozes("Say --bonjour--^^audio:bonjour madame^^ politely.")
    assert len(spans) == 1
    assert spans[0].content == "bonjour"
    assert spans[0].audio_text == "bonjour madame"


def test_span_without_audio_has_none():
    assert parse_clozes("--plain--")[0].audio_text is None


def test_explicit_locator_is_trimmed():
    spans = parse_clozes("--[ term-1 ]   definition--")
    assert spans[0].locator == "term-1"
    assert spans[0].content == "definition"


def test_content_is_trimmed_and_may_span_lines():
    spans = parse_clozes("--  first line\nsecond line  --")
    assert spans[0].content == "first line\nsecond line"


def test_offsets_cover_raw_span():
    text = "before --[k] hidden--^^audio:hi^^ after"
    span = parse_clozes(text)[0]
    assert text[span.start:span.end] == "--[k] hidden--^^audio:hi^^"


def test_malformed_syntax_is_plain_text():
    assert parse_clozes("an --unclosed span") == []
    assert parse_clozes("a rule\n---\nbelow") == []
    assert parse_clozes("empty -- -- span") == []
    assert parse_clozes("no delimiters at all") == []


def test_duplicate_explicit_locators_are_made_unique():
    spans = parse_clozes("--[q] one-- --[q] two-- --[q] three--")
    assert [s.locator for s in spans] == ["q", "q#1", "q#2"]


def test_explicit_locator_shadowing_auto_id():
    spans = parse_clozes("--[auto-0] labelled-- --unlabelled--")
    assert [s.locator for s in spans] == ["auto-0", "auto-0#1"]


def test_inserting_unlabeled_span_shifts_later_auto_ids():
    before = parse_clozes("--alpha-- --beta--")
    after = parse_clozes("--new-- --alpha-- --beta--")
    assert before[0].locator == "auto-0" and before[0].content == "alpha"
    assert after[1].locator == "auto-1" and after[1].content == "alpha"


def test_condense_expanded_keeps_line_breaks():
    assert condense("line one¶line two") == "line one\nline two"


def test_condense_folds_and_truncates():
    text = "word¶" * 40
    result = condense(text, expanded=False, limit=20)
    assert "\n" not in result
    assert result.endswith("...")
    assert len(result) == 23


def test_condense_empty_content_placeholder():
    assert condense("¶", expanded=False) == "[...]"
