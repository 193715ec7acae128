"""Finder layout metadata (.DS_Store) for the root of a disk image volume.

Records the window geometry, icon view options and per-item icon positions
that Finder applies when the volume is opened. The binary format is handled
by the ds_store library; background images are referenced through a
mac_alias record that must point at the file on the mounted volume.
"""

from pathlib import Path

from ds_store import DSStore

DS_STORE_NAME = ".DS_Store"

# Finder icon view background types
BACKGROUND_DEFAULT = 1
BACKGROUND_PICTURE = 2


class LayoutMetadata:
    """Builder for the .DS_Store written at a volume root."""

    def __init__(self) -> None:
        self.icon_size = 128.0
        self.label_size = 14.0
        self.label_on_bottom = True
        self.window_origin = (0, 0)
        self.window_size = (640, 480)
        self.background_image: Path | None = None
        self.icon_positions: dict[str, tuple[int, int]] = {}

    def set_icon_size(self, size: float) -> None:
        self.icon_size = float(size)

    def set_window(self, width: int, height: int, x: int = 0, y: int = 0) -> None:
        self.window_size = (width, height)
        self.window_origin = (x, y)

    def set_label_size(self, size: float) -> None:
        self.label_size = float(size)

    def set_label_place_to_bottom(self, bottom: bool) -> None:
        self.label_on_bottom = bottom

    def set_background_to_default(self) -> None:
        self.background_image = None

    def set_background_image(self, path: Path) -> None:
        """Use a picture background; path must be the file on the mounted volume."""
        self.background_image = Path(path)

    def set_icon_pos(self, name: str, x: int, y: int) -> None:
        """Position the icon of the root entry called name (icon center, points)."""
        self.icon_positions[name] = (x, y)

    def window_bounds(self) -> str:
        (x, y), (width, height) = self.window_origin, self.window_size
        return f"{{{{{x}, {y}}}, {{{width}, {height}}}}}"

    def icon_view_options(self) -> dict:
        options = {
            "viewOptionsVersion": 1,
            "backgroundType": BACKGROUND_DEFAULT,
            "backgroundColorRed": 1.0,
            "backgroundColorGreen": 1.0,
            "backgroundColorBlue": 1.0,
            "gridOffsetX": 0.0,
            "gridOffsetY": 0.0,
            "gridSpacing": 100.0,
            "arrangeBy": "none",
            "showIconPreview": False,
            "showItemInfo": False,
            "labelOnBottom": self.label_on_bottom,
            "textSize": self.label_size,
            "iconSize": self.icon_size,
            "scrollPositionX": 0.0,
            "scrollPositionY": 0.0,
        }
        if self.background_image is not None:
            # Alias resolution needs the real file, only available on macOS
            from mac_alias import Alias

            options["backgroundType"] = BACKGROUND_PICTURE
            options["backgroundImageAlias"] = Alias.for_file(
                str(self.background_image)
            ).to_bytes()
        return options

    def write(self, path: Path) -> None:
        """Write the metadata to path, replacing any existing file."""
        with DSStore.open(str(path), "w+") as store:
            store["."]["bwsp"] = {
                "ShowStatusBar": False,
                "ShowPathbar": False,
                "ShowToolbar": False,
                "ShowTabView": False,
                "ShowSidebar": False,
                "ContainerShowSidebar": False,
                "SidebarWidth": 0,
                "WindowBounds": self.window_bounds(),
            }
            store["."]["icvp"] = self.icon_view_options()
            store["."]["vSrn"] = ("long", 1)
            for name, position in self.icon_positions.items():
                store[name]["Iloc"] = position
