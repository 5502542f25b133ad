import asyncio
import shutil
from typing import List, NamedTuple, Optional

from app.config.settings import DownloadConfig, YtDlpConfig


class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes


class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
        capture_stderr: bool = True
    ) -> CompletedProcess:
        """
        Run subprocess with timeout and proper cleanup.
        The process is killed on timeout, on error and on cancellation.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE if capture_stderr else asyncio.subprocess.DEVNULL,
            stdin=asyncio.subprocess.DEVNULL
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )

            return CompletedProcess(
                returncode=process.returncode,
                stdout=stdout,
                stderr=stderr if capture_stderr else b""
            )
        finally:
            if process.returncode is None:
                process.kill()
                await asyncio.shield(process.wait())

    @staticmethod
    def which(binary: str) -> Optional[str]:
        """Locate an executable on PATH"""
        return shutil.which(binary)


class YTDLPCommandBuilder:
    """Build yt-dlp commands"""

    @staticmethod
    def build_download_command(
        url: str,
        format_str: str,
        output_template: str,
        audio_only: bool,
        ytdlp: YtDlpConfig,
        download: DownloadConfig,
    ) -> List[str]:
        """
        Build command downloading into a file.
        stdout carries the final title and file path (one per line).
        """
        cmd = [
            ytdlp.binary,
            url,
            '-f', format_str,
            '-o', output_template,
            '--no-playlist',
            '--no-progress',
            '--socket-timeout', str(download.socket_timeout),
            '--retries', str(download.retries),
            '--print', 'after_move:title',
            '--print', 'after_move:filepath',
        ]

        if not ytdlp.enable_live_streams:
            cmd.extend(['--match-filter', '!is_live'])

        if ytdlp.js_runtime:
            cmd.extend(['--js-runtimes', ytdlp.js_runtime])

        if audio_only:
            cmd.extend(['-x', '--audio-format', 'mp3'])
        else:
            # The single-file fallback may be webm; sort toward mp4 and remux whatever remains
            cmd.extend([
                '-S', 'ext:mp4:m4a',
                '--merge-output-format', 'mp4',
                '--remux-video', 'mp4',
            ])

        return cmd

    @staticmethod
    def build_version_command(ytdlp: YtDlpConfig) -> List[str]:
        return [ytdlp.binary, '--version']
