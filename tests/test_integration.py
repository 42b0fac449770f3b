#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "requests",
#     "beautifulsoup4",
#     "mutagen",
#     "rich",
#     "click",
#     "pyyaml",
#     "pillow",
# ]
# ///
"""
Integration tests for tunepress.
Tests the CLI and complete conversions, with real ffmpeg where available.
"""

import io
import json
import re
import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

from click.testing import CliRunner
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from tunepress import cli as cli_module
from tunepress.cli import cli
from tunepress.cover_art import CoverArtResolver, NoArtFound
from tunepress.job import FileJob
from tunepress.models import InputFile, Outcome, SeenDigestSet
from tunepress.transcoder import Transcoder

HAVE_FFMPEG = bool(shutil.which('ffmpeg') and shutil.which('ffprobe'))


class TestCLICommands(unittest.TestCase):
    """Test CLI command structure and execution."""

    def setUp(self):
        self.runner = CliRunner()
        self.test_dir = Path(tempfile.mkdtemp())
        self.input_dir = self.test_dir / "Music"
        self.output_dir = self.test_dir / "Converted"
        self.input_dir.mkdir()
        self.env = {'TUNEPRESS_CONFIG_HOME': str(self.test_dir)}

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def invoke(self, args):
        return self.runner.invoke(cli, args, env=self.env)

    def test_cli_help(self):
        result = self.invoke(['--help'])
        self.assertEqual(result.exit_code, 0)
        self.assertIn('Convert a folder of audio', result.output)

    def test_no_subcommand_shows_help(self):
        result = self.invoke([])
        self.assertEqual(result.exit_code, 0)
        self.assertIn('convert', result.output)

    def test_missing_input_dir(self):
        result = self.invoke(['convert', str(self.test_dir / "nope")])
        self.assertNotEqual(result.exit_code, 0)

    @patch('tunepress.cli.shutil.which', return_value=None)
    def test_missing_ffmpeg_is_fatal(self, mock_which):
        (self.input_dir / "a.mp3").write_bytes(b'a')
        result = self.invoke(['convert', str(self.input_dir), '-o', str(self.output_dir)])
        self.assertEqual(result.exit_code, 1)
        self.assertIn('not found in PATH', result.output)

    @patch('tunepress.cli.check_tools')
    def test_empty_input_dir(self, mock_check):
        result = self.invoke(['convert', str(self.input_dir), '-o', str(self.output_dir)])
        self.assertEqual(result.exit_code, 0)
        self.assertIn('No files found', result.output)
        self.assertTrue(self.output_dir.is_dir())

    @patch('tunepress.cli.check_tools')
    @patch.object(CoverArtResolver, 'resolve', side_effect=NoArtFound("none"))
    @patch.object(CoverArtResolver, 'has_embedded_art', return_value=False)
    @patch.object(Transcoder, 'convert')
    def test_convert_run(self, mock_convert, mock_probe, mock_resolve, mock_check):
        """Test a full run: duplicates and existing outputs are skipped."""
        mock_convert.side_effect = lambda src, dest, title, cover: Path(dest).write_bytes(b'm4a')
        (self.input_dir / "First (Official Video).mp3").write_bytes(b'one')
        (self.input_dir / "Zed copy.mp3").write_bytes(b'one')
        (self.input_dir / "Second.mp3").write_bytes(b'two')
        (self.input_dir / "Third.mp3").write_bytes(b'three')
        (self.input_dir / "subdir").mkdir()
        self.output_dir.mkdir()
        (self.output_dir / "Third.m4a").write_bytes(b'old')

        result = self.invoke(['convert', str(self.input_dir), '-o', str(self.output_dir),
                              '-b', '2', '-w', '2'])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertTrue((self.output_dir / "First.m4a").exists())
        self.assertTrue((self.output_dir / "Second.m4a").exists())
        self.assertFalse((self.output_dir / "Zed copy.m4a").exists())
        self.assertEqual((self.output_dir / "Third.m4a").read_bytes(), b'old')
        self.assertEqual(mock_convert.call_count, 2)
        self.assertEqual(result.output.count('✅ Batch complete'), 2)
        self.assertIn('🎉 All files processed.', result.output)

    @patch('tunepress.cli.check_tools')
    @patch.object(cli_module, 'BatchScheduler')
    def test_settings_file_and_overrides(self, mock_scheduler, mock_check):
        (self.input_dir / "a.mp3").write_bytes(b'a')
        (self.test_dir / "tunepress.yaml").write_text(
            f"input_dir: {self.input_dir}\noutput_dir: {self.output_dir}\nbatch_size: 7\nworkers: 3\n"
        )

        result = self.invoke(['convert', '-w', '5'])

        self.assertEqual(result.exit_code, 0, result.output)
        kwargs = mock_scheduler.call_args[1]
        self.assertEqual(kwargs['batch_size'], 7)
        self.assertEqual(kwargs['workers'], 5)
        files = mock_scheduler.return_value.run.call_args[0][0]
        self.assertEqual([f.display_name for f in files], ["a.mp3"])

    def test_info_command(self):
        (self.input_dir / "Done.mp3").write_bytes(b'a')
        (self.input_dir / "Todo.mp3").write_bytes(b'b')
        self.output_dir.mkdir()
        (self.output_dir / "Done.m4a").write_bytes(b'not really audio')

        result = self.invoke(['info', str(self.input_dir), '-o', str(self.output_dir)])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('converted', result.output)
        self.assertIn('pending', result.output)
        self.assertFalse((self.output_dir / "Todo.m4a").exists())


def run_quiet(args):
    subprocess.run(args, check=True, capture_output=True)


def probe(path):
    result = subprocess.run([
        'ffprobe', '-v', 'error',
        '-show_entries', 'stream=codec_type,codec_name:stream_disposition=attached_pic:format_tags=title,artist',
        '-of', 'json', str(path),
    ], check=True, capture_output=True, text=True)
    return json.loads(result.stdout)


def video_md5(path):
    result = subprocess.run([
        'ffmpeg', '-v', 'error', '-i', str(path), '-map', '0:v:0', '-c', 'copy', '-f', 'md5', '-',
    ], check=True, capture_output=True, text=True)
    return result.stdout.strip()


def integrated_loudness(path):
    """Integrated loudness in LUFS, from the ebur128 summary."""
    result = subprocess.run([
        'ffmpeg', '-nostats', '-i', str(path), '-af', 'ebur128', '-f', 'null', '-',
    ], check=True, capture_output=True, text=True)
    summary = result.stderr.rsplit('Summary:', 1)[-1]
    match = re.search(r'I:\s+(-?[\d.]+) LUFS', summary)
    return float(match.group(1))


class FakeSearch:
    def __init__(self, candidates):
        self.candidates = candidates
        self.queries = []

    def search(self, query):
        self.queries.append(query)
        return list(self.candidates)


@unittest.skipUnless(HAVE_FFMPEG, "ffmpeg and ffprobe are required")
class TestEndToEnd(unittest.TestCase):
    """Real conversions through ffmpeg."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.input_dir = self.test_dir / "Music"
        self.output_dir = self.test_dir / "Converted"
        self.input_dir.mkdir()
        self.output_dir.mkdir()
        self.jpeg = io.BytesIO()
        Image.new('RGB', (64, 64), (30, 120, 200)).save(self.jpeg, format='JPEG')

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def silent_wav(self, name):
        path = self.input_dir / name
        run_quiet(['ffmpeg', '-v', 'error', '-f', 'lavfi', '-i', 'anullsrc=r=44100:cl=stereo',
                   '-t', '1', str(path)])
        return path

    def run_job(self, path, search, session=None):
        resolver = CoverArtResolver(search=search, session=session or Mock())
        job = FileJob(InputFile.from_path(path), self.output_dir, SeenDigestSet(),
                      resolver, Transcoder())
        return job, job.run()

    def test_fetched_cover_is_attached(self):
        wav = self.silent_wav("Silent Night (Official Audio).wav")
        session = Mock()
        response = Mock(content=self.jpeg.getvalue(), headers={'Content-Type': 'image/jpeg'})
        session.get.return_value = response
        search = FakeSearch(["https://img.example/cover.jpg"])

        job, result = self.run_job(wav, search, session)

        self.assertEqual(result.outcome, Outcome.CONVERTED_WITH_COVER, result.reason)
        self.assertEqual(search.queries, ["Silent Night song album art"])
        output = self.output_dir / "Silent Night.m4a"
        self.assertEqual(job.output_path, output)

        info = probe(output)
        video = [s for s in info['streams'] if s['codec_type'] == 'video']
        audio = [s for s in info['streams'] if s['codec_type'] == 'audio']
        self.assertEqual(len(video), 1)
        self.assertEqual(len(audio), 1)
        self.assertEqual(video[0]['disposition']['attached_pic'], 1)
        self.assertEqual(audio[0]['codec_name'], 'aac')
        tags = {k.lower(): v for k, v in info['format']['tags'].items()}
        self.assertEqual(tags['title'], "Silent Night")
        self.assertEqual(tags['artist'], "Silent Night")

    def test_embedded_cover_is_copied(self):
        wav = self.silent_wav("source.wav")
        cover = self.test_dir / "cover.jpg"
        cover.write_bytes(self.jpeg.getvalue())
        with_art = self.input_dir / "Kept Cover.m4a"
        run_quiet(['ffmpeg', '-v', 'error', '-i', str(wav), '-i', str(cover),
                   '-map', '0:a', '-map', '1:v', '-c:a', 'aac', '-c:v', 'copy',
                   '-disposition:v', 'attached_pic', '-f', 'ipod', str(with_art)])
        wav.unlink()
        search = FakeSearch(["https://img.example/never.jpg"])

        job, result = self.run_job(with_art, search)

        self.assertEqual(result.outcome, Outcome.CONVERTED_WITH_COVER, result.reason)
        self.assertEqual(search.queries, [])
        self.assertEqual(video_md5(job.output_path), video_md5(with_art))

    def test_audio_is_loudness_normalized(self):
        quiet = self.input_dir / "Quiet Tone.wav"
        run_quiet(['ffmpeg', '-v', 'error', '-f', 'lavfi',
                   '-i', 'sine=frequency=440:sample_rate=44100:duration=10',
                   '-af', 'volume=-10dB', str(quiet)])
        self.assertLess(integrated_loudness(quiet), -20)

        job, result = self.run_job(quiet, FakeSearch([]))

        self.assertEqual(result.outcome, Outcome.CONVERTED_WITHOUT_COVER, result.reason)
        self.assertAlmostEqual(integrated_loudness(job.output_path), -14, delta=1.5)


if __name__ == '__main__':
    unittest.main()
