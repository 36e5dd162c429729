import pytest
from models.job_models import TranslatedUnit
from models.unit_models import Unit
from storage.file_manager import FileManager, assemble_manuscript


def test_assemble_manuscript_orders_special_units():
    text = assemble_manuscript(
        "Book",
        [(999, "", "Thanks."), (2, "Two", "B"), (0, "", "Before."), (998, "", "After."), (1, "One", "A")],
    )
    headings = [line for line in text.splitlines() if line.startswith("#")]
    assert headings == [
        "# Book",
        "## Prologue",
        "## Chapter 1: One",
        "## Chapter 2: Two",
        "## Epilogue",
        "## Author's note",
    ]


@pytest.mark.asyncio
async def test_save_manuscript_and_translation(tmp_path):
    files = FileManager(str(tmp_path / "m"), str(tmp_path / "t"))

    path = await files.save_manuscript(
        "proj/1", "Book", [Unit(project_id="p", number=1, content="Hello.")]
    )
    tpath = await files.save_translation(
        "job-1",
        "Book",
        "es",
        [TranslatedUnit(job_id="job-1", project_id="p", unit_number=1, text="Hola.")],
    )

    assert path == str(tmp_path / "m" / "proj_1.md")
    assert "Hello." in (tmp_path / "m" / "proj_1.md").read_text(encoding="utf-8")
    assert tpath.endswith("job-1.es.md")
    assert "Hola." in (tmp_path / "t" / "job-1.es.md").read_text(encoding="utf-8")
