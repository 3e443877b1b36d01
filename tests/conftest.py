"""Pytest configuration and fixtures."""
import base64
import logging
import stat
from collections.abc import Callable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from omr_worker.config import Settings
from omr_worker.main import create_app

TEST_API_KEY = "test-key"


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


SAMPLE_MUSICXML = """<?xml version="1.0" encoding="UTF-8"?>
<score-partwise version="4.0">
  <work>
    <work-title>Sonatina</work-title>
  </work>
  <identification>
    <creator type="composer">M. Clementi</creator>
    <creator type="lyricist">Nobody</creator>
  </identification>
  <part-list>
    <score-part id="P1">
      <part-name>Cello</part-name>
    </score-part>
  </part-list>
  <part id="P1">
    <measure number="1">
      <attributes>
        <divisions>2</divisions>
        <key><fifths>-3</fifths></key>
        <time><beats>3</beats><beat-type>4</beat-type></time>
        <clef><sign>F</sign><line>4</line></clef>
      </attributes>
      <direction><sound tempo="96"/></direction>
      <note><pitch><step>E</step><alter>-1</alter><octave>3</octave></pitch><duration>6</duration></note>
    </measure>
    <measure number="2">
      <note><pitch><step>G</step><octave>3</octave></pitch><duration>6</duration></note>
    </measure>
    <measure number="3">
      <attributes><key><fifths>2</fifths></key></attributes>
      <note><pitch><step>D</step><octave>3</octave></pitch><duration>6</duration></note>
    </measure>
    <measure number="4">
      <note><pitch><step>A</step><octave>3</octave></pitch><duration>6</duration></note>
    </measure>
    <measure number="5">
      <note><pitch><step>D</step><octave>3</octave></pitch><duration>6</duration></note>
    </measure>
  </part>
</score-partwise>
"""


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def sample_musicxml() -> str:
    """Five-measure single-part score with every metadata field populated."""
    return SAMPLE_MUSICXML


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write an executable ``/bin/sh`` script standing in for an external engine."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(name: str, body: str) -> Path:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n" + body.lstrip("\n"))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def fake_audiveris(make_script, sample_musicxml) -> Path:
    """Audiveris stand-in: ``-batch -export <out> <in>`` writes the sample score to <out>."""
    return make_script(
        "audiveris",
        f"""
cat > "$3" <<'XML'
{sample_musicxml}
XML
""",
    )


@pytest.fixture
def fake_musescore(make_script) -> Path:
    """MuseScore stand-in: ``<in> -o <out>`` writes bytes naming the input file."""
    return make_script(
        "mscore",
        """
printf 'PNG:%s' "$(basename "$1")" > "$3"
""",
    )


@pytest.fixture
def scratch_root(tmp_path: Path) -> Path:
    return tmp_path / "scratch"


@pytest.fixture
def test_settings(tmp_path: Path, scratch_root: Path) -> Settings:
    """Settings with both engines pointing at paths that do not exist."""
    return Settings(
        api_key=TEST_API_KEY,
        audiveris_path=str(tmp_path / "missing" / "audiveris"),
        musescore_path=str(tmp_path / "missing" / "mscore"),
        scratch_root=scratch_root,
        cleanup_grace_seconds=0,
        omr_timeout_seconds=5,
        render_timeout_seconds=5,
        rate_limit_enabled=False,
    )


@pytest_asyncio.fixture
async def app(test_settings: Settings):
    application = create_app(test_settings)
    yield application
    await application.state.workspaces.shutdown()


@pytest_asyncio.fixture
async def client(app):
    """Async test client bound to the app (no network)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Headers with the test Bearer key and JSON content type."""
    return {
        "Authorization": f"Bearer {TEST_API_KEY}",
        "Content-Type": "application/json",
    }


@pytest.fixture
def score_payload() -> Callable[..., dict[str, str]]:
    """Build a ``POST /api/process-score`` body."""

    def _payload(
        score_id: str = "score-1",
        data: bytes = b"%PDF-1.4 fake score",
        file_type: str = "pdf",
        file_name: str | None = "score.pdf",
    ) -> dict[str, str]:
        body = {
            "scoreId": score_id,
            "fileData": base64.b64encode(data).decode("ascii"),
            "fileType": file_type,
        }
        if file_name is not None:
            body["fileName"] = file_name
        return body

    return _payload
