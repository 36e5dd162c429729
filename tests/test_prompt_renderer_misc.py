import prompt_renderer
import pytest
from jinja2 import DictLoader, Environment, StrictUndefined, UndefinedError
from models.review_models import Issue, Severity


@pytest.fixture
def templates(monkeypatch):
    def install(mapping):
        env = Environment(
            loader=DictLoader(mapping), autoescape=False, undefined=StrictUndefined
        )
        env.filters["tojson"] = prompt_renderer._tojson
        monkeypatch.setattr(prompt_renderer, "_env", env)

    return install


def test_rendered_prompt_is_stripped(templates):
    templates({"unit.j2": "\n\n  Revise {{ label }}.  \n\n"})
    assert prompt_renderer.render_prompt("unit.j2", {"label": "Chapter 4"}) == "Revise Chapter 4."


def test_missing_context_variable_fails_loudly(templates):
    templates({"unit.j2": "Revise {{ label }} using {{ instructions }}"})
    with pytest.raises(UndefinedError):
        prompt_renderer.render_prompt("unit.j2", {"label": "Chapter 4"})


def test_tojson_serializes_issue_model():
    issue = Issue(severity=Severity.MAJOR, category="Time Line", description="Ana arrives early")
    rendered = prompt_renderer._tojson(issue)
    assert '"severity": "major"' in rendered
    assert '"category": "time_line"' in rendered


def test_tojson_sorts_sets():
    assert prompt_renderer._tojson({"units": {11, 3, 7}}) == '{"units": [3, 7, 11]}'


def test_tojson_keeps_non_ascii_text():
    assert prompt_renderer._tojson({"title": "El ceño fruncido"}) == (
        '{"title": "El ceño fruncido"}'
    )


def test_translator_template_renders_from_prompts_dir():
    prompt = prompt_renderer.render_prompt(
        "translator_agent/translate_unit.j2",
        {
            "unit_label": "Prologue",
            "title": "Niebla",
            "text": "La niebla cubría el puerto.",
            "source_language": "es",
            "target_language": "en",
        },
    )
    assert prompt.startswith('Translate Prologue ("Niebla").')
    assert '"target_language": "en"' in prompt
    assert prompt.endswith('"notes": ""}')
