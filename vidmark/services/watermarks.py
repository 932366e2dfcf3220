from vidmark.core.errors import InvalidParameters, NotFound

SIZE_PRESETS = {"small": 0.1, "medium": 0.2, "large": 0.3}


class WatermarkCatalog:
    def __init__(self, names: list[str], public_base_url: str, key_prefix: str = "images/watermark") -> None:
        self.names = [name.strip().lower() for name in names if name.strip()]
        self.public_base_url = public_base_url.rstrip("/")
        self.key_prefix = key_prefix.strip("/")

    def normalize(self, selector: str | None) -> str:
        if not selector or not selector.strip():
            raise InvalidParameters("watermarkSelector is required")
        name = selector.strip().lower()
        if name.endswith(".png"):
            name = name[: -len(".png")]
        if name not in self.names:
            raise NotFound(f"Watermark asset not found: {selector}")
        return name

    def asset_url(self, selector: str) -> str:
        return f"{self.public_base_url}/{self.key_prefix}/{self.normalize(selector)}.png"

    def entries(self) -> list[dict]:
        return [{"id": name, "url": f"{self.public_base_url}/{self.key_prefix}/{name}.png"} for name in self.names]


def resolve_scale(value: float | str | None, default: float = 0.1) -> float:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        preset = SIZE_PRESETS.get(value.strip().lower())
        if preset is not None:
            return preset
        try:
            return float(value)
        except ValueError as exc:
            raise InvalidParameters(f"Invalid scale: {value}") from exc
    return float(value)
