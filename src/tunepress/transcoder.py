"""ffmpeg invocation: argument construction and running the conversion."""

import subprocess
from pathlib import Path
from typing import List, Optional

from .log import debug
from .models import EmbeddedArt, FetchedArt, NoArt, TranscodeSpec
from .settings import LoudnessTarget


class TranscodeError(Exception):
    """ffmpeg exited non-zero or could not be started."""

    def __init__(self, returncode: Optional[int], diagnostic: str):
        self.returncode = returncode
        self.diagnostic = diagnostic
        last_line = diagnostic.strip().splitlines()[-1] if diagnostic.strip() else 'no output'
        super().__init__(f"ffmpeg exited with {returncode}: {last_line}")


class Transcoder:
    """Converts one input to a loudness-normalized, tagged container file."""

    def __init__(self, ffmpeg: str = 'ffmpeg', bitrate: str = '128k', audio_codec: str = 'aac',
                 container: str = 'ipod', loudness: Optional[LoudnessTarget] = None):
        self.ffmpeg = ffmpeg
        self.bitrate = bitrate
        self.audio_codec = audio_codec
        self.container = container
        self.loudness = loudness or LoudnessTarget()

    def loudnorm_filter(self) -> str:
        target = self.loudness
        return f"loudnorm=I={target.integrated:g}:TP={target.true_peak:g}:LRA={target.range:g}"

    def build_args(self, spec: TranscodeSpec) -> List[str]:
        """Full ffmpeg command line for a job; pure, no I/O."""
        args = [self.ffmpeg, '-nostdin', '-n', '-i', str(spec.input_path)]

        cover = spec.cover
        if isinstance(cover, FetchedArt):
            args += [
                '-i', str(cover.image_path),
                '-map', '0:a:0',
                '-map', '1:v:0',
                '-c:v', 'mjpeg',
                '-disposition:v', 'attached_pic',
            ]
        elif isinstance(cover, EmbeddedArt):
            args += [
                '-map', '0:a:0',
                '-map', '0:v:0',
                '-c:v', 'copy',
                '-disposition:v', 'attached_pic',
            ]
        elif isinstance(cover, NoArt):
            args += ['-map', '0:a:0']
        else:
            raise TypeError(f"unknown cover state: {cover!r}")

        args += [
            '-af', self.loudnorm_filter(),
            '-c:a', self.audio_codec,
            '-b:a', self.bitrate,
            '-metadata', f"title={spec.title}",
            '-metadata', f"artist={spec.title}",
            '-f', self.container,
            str(spec.output_path),
        ]
        return args

    def convert(self, input_path: Path, output_path: Path, title: str, cover) -> None:
        """
        Run ffmpeg for one file.

        Raises:
            TranscodeError: ffmpeg is missing or reported a failure.
        """
        args = self.build_args(TranscodeSpec(Path(input_path), Path(output_path), title, cover))
        debug("🧪 " + ' '.join(args))

        try:
            result = subprocess.run(args, capture_output=True, text=True, errors='replace')
        except OSError as e:
            raise TranscodeError(None, str(e)) from e

        if result.returncode != 0:
            raise TranscodeError(result.returncode, result.stderr or '')
