from dataclasses import dataclass
from enum import Enum

from vidmark.core.errors import InvalidParameters

OVERLAY_MARGIN = 10
PIPE_OUTPUT = "pipe:1"


class Operation(str, Enum):
    WATERMARK = "watermark"
    CONVERT = "convert"


class Position(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"


class Container(str, Enum):
    MP4 = "mp4"
    WEBM = "webm"


class QualityTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# (x, y) overlay expressions; W/H is the frame, w/h the scaled overlay.
# In scale2ref, iw is the reference frame and mdar the overlay's own aspect.
POSITION_OFFSETS: dict[Position, tuple[str, str]] = {
    Position.TOP_LEFT: (f"{OVERLAY_MARGIN}", f"{OVERLAY_MARGIN}"),
    Position.TOP_RIGHT: (f"W-w-{OVERLAY_MARGIN}", f"{OVERLAY_MARGIN}"),
    Position.BOTTOM_LEFT: (f"{OVERLAY_MARGIN}", f"H-h-{OVERLAY_MARGIN}"),
    Position.BOTTOM_RIGHT: (f"W-w-{OVERLAY_MARGIN}", f"H-h-{OVERLAY_MARGIN}"),
    Position.CENTER: ("(W-w)/2", "(H-h)/2"),
}

CODECS: dict[Container, tuple[str, str]] = {
    Container.MP4: ("libx264", "aac"),
    Container.WEBM: ("libvpx-vp9", "libopus"),
}

# container -> tier -> (crf, preset); for VP9 the preset is the -cpu-used speed.
QUALITY_SETTINGS: dict[Container, dict[QualityTier, tuple[str, str]]] = {
    Container.MP4: {
        QualityTier.LOW: ("28", "fast"),
        QualityTier.MEDIUM: ("23", "medium"),
        QualityTier.HIGH: ("18", "slow"),
    },
    Container.WEBM: {
        QualityTier.LOW: ("36", "4"),
        QualityTier.MEDIUM: ("30", "2"),
        QualityTier.HIGH: ("24", "1"),
    },
}

CONTENT_TYPES: dict[Container, str] = {
    Container.MP4: "video/mp4",
    Container.WEBM: "video/webm",
}


@dataclass(slots=True)
class CommandParams:
    input_path: str | None
    output_path: str | None = None
    watermark_path: str | None = None
    position: str | None = Position.BOTTOM_RIGHT.value
    opacity: float = 0.8
    scale: float = 0.1
    output_container: str | None = Container.MP4.value
    quality_tier: str | None = QualityTier.MEDIUM.value


def normalize_position(value: str | None) -> Position:
    try:
        return Position((value or "").strip().lower())
    except ValueError:
        return Position.BOTTOM_RIGHT


def normalize_container(value: str | None) -> Container:
    try:
        return Container((value or "").strip().lower().lstrip("."))
    except ValueError:
        return Container.MP4


def normalize_quality(value: str | None) -> QualityTier:
    try:
        return QualityTier((value or "").strip().lower())
    except ValueError:
        return QualityTier.MEDIUM


def content_type_for(container: str | None) -> str:
    return CONTENT_TYPES[normalize_container(container)]


def build_args(operation: Operation | str, params: CommandParams) -> list[str]:
    try:
        operation = Operation(operation)
    except ValueError as exc:
        raise InvalidParameters(f"Unsupported operation: {operation}") from exc
    if not params.input_path:
        raise InvalidParameters("Input location is required")

    container = normalize_container(params.output_container)
    quality = normalize_quality(params.quality_tier)
    output = params.output_path or PIPE_OUTPUT

    args = ["-hide_banner", "-y", "-i", params.input_path]
    if operation is Operation.WATERMARK:
        args += _watermark_inputs(params)
    else:
        args += ["-map", "0:v:0", "-map", "0:a?"]
    args += _codec_args(container, quality)
    args += _muxer_args(container, streaming=output == PIPE_OUTPUT)
    args += ["-f", container.value, output]
    return args


def _watermark_inputs(params: CommandParams) -> list[str]:
    if not params.watermark_path:
        raise InvalidParameters("Watermark asset location is required")
    if not 0.0 <= params.opacity <= 1.0:
        raise InvalidParameters("opacity must be between 0 and 1")
    if not 0.0 < params.scale <= 1.0:
        raise InvalidParameters("scale must be greater than 0 and at most 1")

    x, y = POSITION_OFFSETS[normalize_position(params.position)]
    graph = (
        f"[1:v][0:v]scale2ref=w=iw*{params.scale:g}:h=ow/mdar[wm][base];"
        f"[wm]format=rgba,colorchannelmixer=aa={params.opacity:g}[mark];"
        f"[base][mark]overlay=x={x}:y={y}[v]"
    )
    return ["-i", params.watermark_path, "-filter_complex", graph, "-map", "[v]", "-map", "0:a?"]


def _codec_args(container: Container, quality: QualityTier) -> list[str]:
    video_codec, audio_codec = CODECS[container]
    crf, preset = QUALITY_SETTINGS[container][quality]
    if container is Container.WEBM:
        return [
            "-c:v", video_codec, "-crf", crf, "-b:v", "0", "-deadline", "good", "-cpu-used", preset,
            "-c:a", audio_codec, "-b:a", "128k",
        ]
    return [
        "-c:v", video_codec, "-crf", crf, "-preset", preset, "-pix_fmt", "yuv420p",
        "-c:a", audio_codec,
    ]


def _muxer_args(container: Container, streaming: bool) -> list[str]:
    if container is not Container.MP4:
        return []
    if streaming:
        return ["-movflags", "frag_keyframe+empty_moov"]
    return ["-movflags", "+faststart"]
