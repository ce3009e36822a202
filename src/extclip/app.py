import logging
from dataclasses import dataclass
from typing import Callable

import rumps

from extclip import __version__
from extclip.background import BackgroundClient
from extclip.clipboard import copy_clip, default_port
from extclip.config import APP_DISPLAY_NAME, DB_PATH, MENU_DISPLAY_COUNT, MENU_REFRESH_INTERVAL, PREVIEW_LENGTH
from extclip.frontmost import FrontmostAppResolver
from extclip.models import Clip
from extclip.storage import ClipStore
from extclip.utils import clip_menu_title, ensure_dirs
from extclip.watcher import WatcherConfig, start_watcher, stop_watcher

logger = logging.getLogger(__name__)

CLIP_KEY_PREFIX = "extclip_clip_"
DELETE_KEY_PREFIX = "extclip_delete_"
APP_KEY_PREFIX = "extclip_app_"


@dataclass
class MenuItemSpec:
    """Specification for a menu item, separating logic from rumps rendering."""

    title: str
    callback: Callable | None = None
    key: str | None = None
    is_submenu: bool = False
    children: list["MenuItemSpec | None"] | None = None


class ExtClipApp(rumps.App):
    def __init__(self):
        super().__init__(APP_DISPLAY_NAME, title="📋", quit_button=None)
        self._init_app()

    def _init_app(self) -> None:
        """Initialize app components. Separated for testability."""
        ensure_dirs()
        self._store = ClipStore(DB_PATH)
        self._port = default_port()
        self._clip_ids: dict[str, int] = {}
        self._delete_ids: dict[str, int] = {}
        self._app_filters: dict[str, str] = {}
        self._menu_dirty = False
        self._watcher = start_watcher(
            WatcherConfig(),
            port=self._port,
            gateway=self._store,
            background=BackgroundClient(),
            resolver=FrontmostAppResolver(own_name=APP_DISPLAY_NAME),
            on_new_clip=self._on_new_clip,
        )
        self._build_menu()

    def _build_menu(self, clips: list[Clip] | None = None, heading: str | None = None) -> None:
        self.menu.clear()
        if clips is None:
            clips = self._store.get_recent_clips(MENU_DISPLAY_COUNT)
        specs = self._compute_menu_specs(clips, heading)
        self.menu = [self._render_spec(spec) for spec in specs]

    def _compute_menu_specs(self, clips: list[Clip], heading: str | None = None) -> list[MenuItemSpec | None]:
        """Compute menu item specifications. Pure logic, no rumps dependency.

        ``heading`` is set when ``clips`` is a filtered view (search results
        or a single source app); the menu then offers a way back.
        """
        self._clip_ids.clear()
        self._delete_ids.clear()
        self._app_filters.clear()

        specs: list[MenuItemSpec | None] = [
            MenuItemSpec(heading or f"{APP_DISPLAY_NAME} v{__version__} - Clipboard History"),
            None,
            MenuItemSpec("Search...", callback=self._on_search),
        ]
        apps = self._store.get_all_from_apps()
        if apps:
            specs.append(MenuItemSpec("Filter by App", is_submenu=True, children=self._compute_app_specs(apps)))
        if heading is not None:
            specs.append(MenuItemSpec("Show All", callback=lambda _: self._build_menu()))
        specs.append(None)

        if not clips:
            specs.append(MenuItemSpec("(No clipboard history)"))
        for clip in clips:
            key = f"{CLIP_KEY_PREFIX}{clip.id}"
            self._clip_ids[key] = clip.id
            title = clip_menu_title(clip.content, clip.from_app_name, PREVIEW_LENGTH)
            specs.append(MenuItemSpec(title, callback=self._on_clip_click, key=key))

        specs.append(None)
        if clips:
            specs.append(MenuItemSpec("Delete Clip", is_submenu=True, children=self._compute_delete_specs(clips)))
        specs.extend([
            MenuItemSpec("Clear History", callback=self._on_clear),
            None,
            MenuItemSpec(f"Quit {APP_DISPLAY_NAME}", callback=self._on_quit),
        ])
        return specs

    def _compute_app_specs(self, apps: list[str]) -> list[MenuItemSpec | None]:
        children: list[MenuItemSpec | None] = []
        for index, app_name in enumerate(apps):
            key = f"{APP_KEY_PREFIX}{index}"
            self._app_filters[key] = app_name
            children.append(MenuItemSpec(app_name, callback=self._on_filter_app, key=key))
        return children

    def _compute_delete_specs(self, clips: list[Clip]) -> list[MenuItemSpec | None]:
        children: list[MenuItemSpec | None] = []
        for clip in clips:
            key = f"{DELETE_KEY_PREFIX}{clip.id}"
            self._delete_ids[key] = clip.id
            title = clip_menu_title(clip.content, clip.from_app_name, PREVIEW_LENGTH)
            children.append(MenuItemSpec(title, callback=self._on_delete_click, key=key))
        return children

    def _render_spec(self, spec: MenuItemSpec | None) -> rumps.MenuItem | None:
        if spec is None:
            return None
        if spec.is_submenu and spec.children:
            submenu = rumps.MenuItem(spec.title)
            for child in spec.children:
                submenu.add(self._render_spec(child))
            return submenu
        item = rumps.MenuItem(spec.title, callback=spec.callback)
        if spec.key is not None:
            item._id = spec.key
        return item

    def _on_new_clip(self, _added: bool) -> None:
        # Runs on the watcher's delivery thread; the menu is rebuilt by the timer.
        self._menu_dirty = True

    @rumps.timer(MENU_REFRESH_INTERVAL)
    def _refresh_if_dirty(self, _sender) -> None:
        if self._menu_dirty:
            self._menu_dirty = False
            self._build_menu()

    def _on_clip_click(self, sender) -> None:
        clip_id = self._clip_ids.get(getattr(sender, "_id", ""))
        if clip_id is None:
            return

        clip = self._store.get_clip(clip_id)
        if clip is None:
            return

        if copy_clip(self._port, clip.content, self._watcher.mark_self_copy):
            rumps.notification(APP_DISPLAY_NAME, "", "Copied to clipboard", sound=False)
        else:
            rumps.notification(APP_DISPLAY_NAME, "", "Could not access the clipboard", sound=False)

    def _on_delete_click(self, sender) -> None:
        clip_id = self._delete_ids.get(getattr(sender, "_id", ""))
        if clip_id is None:
            return
        self._store.delete_clip(clip_id)
        self._build_menu()

    def _on_filter_app(self, sender) -> None:
        app_name = self._app_filters.get(getattr(sender, "_id", ""))
        if app_name is None:
            return
        clips = self._store.get_clips_from_app(app_name, limit=MENU_DISPLAY_COUNT)
        self._build_menu(clips, f"From {app_name} ({len(clips)} clips)")

    def _on_search(self, _sender) -> None:
        response = rumps.Window(
            message="Search clipboard history:",
            title=f"{APP_DISPLAY_NAME} Search",
            default_text="",
            ok="Search",
            cancel="Cancel",
            dimensions=(300, 24),
        ).run()

        if response.clicked and response.text.strip():
            query = response.text.strip()
            results = self._store.search(query, limit=MENU_DISPLAY_COUNT)
            if not results:
                rumps.alert(f"{APP_DISPLAY_NAME} Search", f'No results for "{query}"')
                return
            self._build_menu(results, f'Search: "{query}" ({len(results)} results)')

    def _on_clear(self, _sender) -> None:
        if rumps.alert(APP_DISPLAY_NAME, "Clear all clipboard history?", ok="Clear", cancel="Cancel"):
            self._store.delete_all_clips()
            self._build_menu()

    def _on_quit(self, _sender) -> None:
        stop_watcher(self._watcher)
        self._store.close()
        rumps.quit_application()
