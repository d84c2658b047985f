from prompt_ab.prompts import extract_variables, interpolate_template
from prompt_ab.prompts.templates import missing_variables


def test_interpolate_replaces_placeholders_with_optional_whitespace():
    template = "Summarize {{topic}} for {{ audience }}."

    result = interpolate_template(template, {"topic": "RAG", "audience": "engineers"})

    assert result == "Summarize RAG for engineers."


def test_interpolate_keeps_unresolved_placeholders():
    assert interpolate_template("Hi {{name}}, see {{link}}", {"name": "Ada"}) == (
        "Hi Ada, see {{link}}"
    )


def test_interpolate_is_single_pass_and_stringifies_values():
    result = interpolate_template("{{a}} / {{b}} / {{n}}", {"a": "{{b}}", "b": "x", "n": 3})

    assert result == "{{b}} / x / 3"


def test_extract_variables_deduplicates_in_order():
    variables = extract_variables("{{ tone }} {{topic}} {{tone}}")

    assert [v.name for v in variables] == ["tone", "topic"]
    assert variables[0].required is True
    assert variables[0].description == "Variable: tone"


def test_extract_variables_without_placeholders():
    assert extract_variables("plain prompt") == []


def test_missing_variables():
    assert missing_variables("{{a}} {{b}} {{c}}", {"b": "1"}) == ["a", "c"]
