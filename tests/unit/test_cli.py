import io

import numpy as np
from PIL import Image
from typer.testing import CliRunner

from windscribe_port_sync.presentation.cli.main import app

runner = CliRunner()


def test_solve_captcha_from_files(tmp_path):
    arr = np.full((150, 300, 3), 100, dtype=np.uint8)
    arr[40:101, 180:241] = 30
    buf = io.BytesIO()
    Image.fromarray(arr).save(buf, format="PNG")
    background = tmp_path / "bg.png"
    background.write_bytes(buf.getvalue())

    result = runner.invoke(app, ["solve-captcha", str(background), "--top", "45"])
    assert result.exit_code == 0
    assert "offset=178" in result.output


def test_solve_captcha_rejects_garbage(tmp_path):
    background = tmp_path / "bg.png"
    background.write_bytes(b"nope")
    result = runner.invoke(app, ["solve-captcha", str(background), "--top", "45"])
    assert result.exit_code == 1
