"""Tests for main.py CLI functionality."""

import io
from unittest.mock import patch

from PIL import Image

from wp_image_pipeline.core.models import PipelineSettings, ProcessOptions
from wp_image_pipeline.main import main, process_local_files
from wp_image_pipeline.testing.fakes import create_test_image


class TestMainCLI:
    """Tests for the main CLI functionality."""

    def test_main_with_no_args_shows_help(self):
        with patch("sys.argv", ["wp-image-pipeline"]):
            with patch("argparse.ArgumentParser.print_help") as mock_help:
                with patch("sys.exit") as mock_exit:
                    main()
                    mock_help.assert_called_once()
                    mock_exit.assert_called_once_with(1)

    def test_main_version_command(self):
        with patch("sys.argv", ["wp-image-pipeline", "version"]):
            with patch("builtins.print") as mock_print:
                with patch("sys.exit") as mock_exit:
                    main()
                    mock_print.assert_any_call("WP Image Pipeline CLI")
                    mock_print.assert_any_call("Version 0.1.0")
                    mock_print.assert_any_call(
                        "Image metadata and scrambling for WordPress content"
                    )
                    mock_exit.assert_called_once_with(0)

    def test_main_serve_command(self):
        with patch("sys.argv", ["wp-image-pipeline", "serve", "--port", "9000"]):
            with patch("wp_image_pipeline.main.create_app") as mock_create_app:
                with patch("wp_image_pipeline.main.uvicorn.run") as mock_run:
                    main()
                    mock_run.assert_called_once_with(
                        mock_create_app.return_value, host="127.0.0.1", port=9000
                    )

    def test_main_process_command(self, tmp_path):
        source = tmp_path / "photo.jpg"
        source.write_bytes(create_test_image(60, 40, copyright="(c) X", gps=True))
        out_dir = tmp_path / "out"

        test_args = [
            "wp-image-pipeline",
            "process",
            str(source),
            "--output-dir",
            str(out_dir),
            "--action",
            "strip",
        ]
        with patch("sys.argv", test_args):
            with patch("builtins.print") as mock_print:
                with patch("sys.exit") as mock_exit:
                    main()
                    mock_print.assert_any_call("Processed 1 of 1 images")
                    mock_exit.assert_called_once_with(0)

        processed = out_dir / "photo.jpg"
        assert processed.exists()
        assert len(Image.open(io.BytesIO(processed.read_bytes())).getexif()) == 0

    def test_main_process_command_reports_failures(self, tmp_path):
        broken = tmp_path / "broken.jpg"
        broken.write_bytes(b"not an image")

        test_args = [
            "wp-image-pipeline",
            "process",
            str(broken),
            str(tmp_path / "missing.png"),
            "--output-dir",
            str(tmp_path / "out"),
            "--action",
            "add",
            "--author",
            "Ann",
        ]
        with patch("sys.argv", test_args):
            with patch("builtins.print") as mock_print:
                with patch("sys.exit") as mock_exit:
                    main()
                    mock_print.assert_any_call("Processed 0 of 2 images")
                    mock_exit.assert_called_once_with(1)

    def test_main_process_command_invalid_options(self, tmp_path):
        test_args = [
            "wp-image-pipeline",
            "process",
            "a.jpg",
            "--output-dir",
            str(tmp_path),
            "--action",
            "add",
            "--quality",
            "0",
        ]
        with patch("sys.argv", test_args):
            with patch("builtins.print"):
                with patch("sys.exit") as mock_exit:
                    main()
                    mock_exit.assert_called_once_with(2)

    def test_main_process_command_with_all_options(self, tmp_path):
        source = tmp_path / "scan.png"
        source.write_bytes(create_test_image(120, 90, format="PNG"))

        test_args = [
            "wp-image-pipeline",
            "process",
            str(source),
            "--output-dir",
            str(tmp_path / "out"),
            "--action",
            "scramble",
            "--scramble-type",
            "watermark",
            "--scramble-intensity",
            "80",
            "--watermark-text",
            "DRAFT",
            "--watermark-position",
            "bottom-right",
            "--optimize",
            "--max-width",
            "60",
            "--quality",
            "70",
            "--workers",
            "2",
        ]
        with patch("sys.argv", test_args):
            with patch("builtins.print"):
                with patch("sys.exit") as mock_exit:
                    main()
                    mock_exit.assert_called_once_with(0)

        output = Image.open(tmp_path / "out" / "scan.png")
        assert output.size == (60, 45)


def test_process_local_files_keeps_order(tmp_path):
    paths = []
    for name in ("a", "b", "c"):
        path = tmp_path / f"{name}.jpg"
        path.write_bytes(create_test_image(30, 30))
        paths.append(str(path))

    results = process_local_files(
        paths,
        str(tmp_path / "out"),
        ProcessOptions(action="strip"),
        PipelineSettings(max_workers=3),
    )

    assert [r.image_id for r in results] == paths
    assert all(r.success for r in results)
