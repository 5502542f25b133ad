from typing import Any, Dict, List, Optional

from app.models.internal import DownloadRequest, Quality

# Native backend hint per quality; 360p asks for the smallest stream
NATIVE_QUALITY_HINTS = {
    Quality.P1080: "highest",
    Quality.P720: "highest",
    Quality.P480: "highest",
    Quality.P360: "lowest",
}


class FormatDecision:
    """Make format decisions"""

    @staticmethod
    def decide(request: DownloadRequest) -> str:
        """
        yt-dlp format selector for a request.
        Quality is a height ceiling, never an exact height.
        """
        if request.audio_only:
            return 'bestaudio'

        height = request.quality.height
        return f"bestvideo[height<={height}]+bestaudio/best[height<={height}]"

    @staticmethod
    def native_hint(request: DownloadRequest) -> str:
        if request.audio_only:
            return "highestaudio"
        return NATIVE_QUALITY_HINTS[request.quality]

    @staticmethod
    def select_native_format(info: Dict[str, Any], request: DownloadRequest) -> Optional[Dict[str, Any]]:
        """
        Pick one directly downloadable format from yt_dlp info.
        Audio requests take the best audio-only stream; video requests take a
        progressive (audio+video) stream under the height ceiling.
        """
        formats = [f for f in info.get("formats") or [] if f.get("url")]

        if request.audio_only:
            audios = [f for f in formats if _is_audio_only(f)]
            if not audios:
                return None
            return max(audios, key=lambda f: (f.get("abr") or 0, f.get("tbr") or 0))

        progressive = [f for f in formats if _is_progressive(f)]
        # Served as video/mp4, so mp4 containers win whenever one exists
        progressive = [f for f in progressive if f.get("ext") == "mp4"] or progressive
        ceiling = request.quality.height
        candidates: List[Dict[str, Any]] = [f for f in progressive if (f.get("height") or 0) <= ceiling]
        if not candidates:
            # Nothing under the ceiling: the smallest stream is the closest match
            candidates = progressive
            if not candidates:
                return None
            return min(candidates, key=_size_key)

        if FormatDecision.native_hint(request) == "lowest":
            return min(candidates, key=_size_key)
        return max(candidates, key=_size_key)


def _is_audio_only(f: Dict[str, Any]) -> bool:
    return f.get("vcodec") == "none" and f.get("acodec") not in (None, "none")


def _is_progressive(f: Dict[str, Any]) -> bool:
    return f.get("vcodec") not in (None, "none") and f.get("acodec") not in (None, "none")


def _size_key(f: Dict[str, Any]):
    return (f.get("height") or 0, f.get("tbr") or 0)
