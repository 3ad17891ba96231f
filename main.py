import os
import platform
import subprocess
import tkinter as tk
from tkinter import filedialog
from typing import Dict, Optional

import streamlit as st

# Local application imports
from mediatracker import create_library_service
from mediatracker.domain import Completed, MediaEntry, ProgressUpdated, Sample, SessionEnded
from mediatracker.errors import PollError, StoreError
from mediatracker.logging_ import setup_logging
from mediatracker.services import LibraryService
from mediatracker.settings import load_settings, save_settings
from mediatracker.utils import SORT_KEYS, format_file_size, format_seconds_to_human_readable, sort_entries

# === CONSTANTS & CONFIGURATION ===
PAGE_TITLE = "MediaTracker"
PAGE_ICON = "🎬"

# === INITIALIZATION ===
def load_css(file_name=os.path.join(os.path.abspath(os.path.dirname(__file__)), "styles.css")):
    if os.path.exists(file_name):
        with open(file_name) as f:
            st.markdown(f"<style>{f.read()}</style>", unsafe_allow_html=True)

st.set_page_config(
    page_title=PAGE_TITLE,
    page_icon=PAGE_ICON,
    layout="wide",
    initial_sidebar_state="expanded"
)

load_css()

# === HELPER FUNCTIONS ===
def open_file_dialog() -> Optional[str]:
    """Opens a system-native folder selection dialog."""
    try:
        root = tk.Tk()
        root.withdraw()
        root.attributes('-topmost', True)
        root.lift()
        root.update_idletasks()
        path = filedialog.askdirectory(title="Select Video Folder")
        root.destroy()
        return path if path else None
    except tk.TclError:
        return None

def open_in_file_manager(path: str):
    """
    Opens the file manager at the specified path.
    If path is a file, it highlights the file.
    """
    path = os.path.abspath(path)
    system = platform.system()

    try:
        if system == "Windows":
            subprocess.run(['explorer', '/select,', os.path.normpath(path)])
        elif system == "Darwin":  # macOS
            subprocess.run(['open', '-R', path])
        else:  # Linux
            dir_path = os.path.dirname(path) if os.path.isfile(path) else path
            subprocess.run(['xdg-open', dir_path])
    except OSError as e:
        st.error(f"Could not open file manager: {e}")

@st.cache_resource
def get_library_service() -> LibraryService:
    """Builds one LibraryService (and its monitor thread) per server process."""
    settings = load_settings()
    setup_logging(settings.get("log_level", "INFO"))
    return create_library_service(settings)

@st.cache_resource
def get_monitor_feed(_library_service: LibraryService) -> Dict:
    """One monitor subscription shared by every browser session of this process."""
    return {"subscription": _library_service.monitor.subscribe(), "live": {}}

def navigate(path: str):
    st.session_state.current_path = path
    st.rerun()

# === COMPONENT RENDERERS ===
def render_sidebar(settings: Dict, library_service: LibraryService):
    with st.sidebar:
        st.markdown("### Library")

        if st.button("📂 Select Folder", use_container_width=True):
            if p := open_file_dialog():
                navigate(p)

        typed = st.text_input("Folder path", value=st.session_state.current_path, key="w_path")
        if st.button("Go", use_container_width=True) and typed != st.session_state.current_path:
            if os.path.isdir(typed):
                navigate(typed)
            else:
                st.warning("Folder not found.")

        st.markdown("<br>", unsafe_allow_html=True)

        with st.expander("⚙️ Preferences"):
            exe = st.text_input("VLC executable", value=settings.get('player_executable', 'vlc'))
            port = st.number_input("HTTP port", min_value=1, max_value=65535,
                                   value=int(settings.get('http_port', 8080)))
            password = st.text_input("HTTP password", value=settings.get('http_password', ''), type="password")
            interval = st.number_input("Poll interval (s)", min_value=0.5, max_value=30.0,
                                       value=float(settings.get('poll_interval', 2.0)), step=0.5)

            if st.button("Save", use_container_width=True):
                settings.update({
                    'player_executable': exe,
                    'http_port': int(port),
                    'http_password': password,
                    'poll_interval': float(interval),
                })
                save_settings(settings)
                st.info("Saved. Restart the app to apply.")

        render_monitor_panel(library_service)

@st.fragment(run_every=2)
def render_monitor_panel(library_service: LibraryService):
    """Shows the live session and turns monitor events into notifications."""
    feed = get_monitor_feed(library_service)
    live = feed["live"]
    for event in feed["subscription"].drain():
        if isinstance(event, ProgressUpdated):
            live[event.file_path] = event
        elif isinstance(event, Completed):
            st.toast(f"✓ Finished {os.path.basename(event.file_path)}")
        elif isinstance(event, SessionEnded):
            live.pop(event.file_path, None)

    st.markdown("### Now Playing")
    session = library_service.monitor.active_session
    if session is None:
        st.caption("Not monitoring.")
        return

    st.caption(os.path.basename(session.target_path))
    latest = live.get(session.target_path)
    if latest is not None:
        st.progress(min(latest.percentage, 100) / 100,
                    text=f"{format_seconds_to_human_readable(latest.position)} / "
                         f"{format_seconds_to_human_readable(latest.length)} ({latest.percentage}%)")

    col_stop, col_check = st.columns(2)
    if col_stop.button("⏹ Stop", use_container_width=True):
        library_service.stop_monitoring()
        st.rerun()
    if col_check.button("📡 Status", use_container_width=True):
        status = library_service.get_live_status()
        if isinstance(status, PollError):
            st.warning(f"VLC: {status.message}")
        elif isinstance(status, Sample):
            st.info(f"VLC {status.state.value} at {round(status.position * 100)}%")

def render_breadcrumbs(library_service: LibraryService):
    crumbs = library_service.breadcrumbs(st.session_state.current_path)
    if not crumbs:
        return
    cols = st.columns(len(crumbs))
    for i, (label, path) in enumerate(crumbs):
        with cols[i]:
            if st.button(label, key=f"crumb_{i}", use_container_width=True):
                navigate(path)

def render_folder(entry: MediaEntry):
    if st.button(f"📁 {entry.name}", key=f"dir_{hash(entry.path)}", use_container_width=True):
        navigate(entry.path)

def render_card(entry: MediaEntry, library_service: LibraryService):
    """Renders a single video card with watch progress and controls."""
    k_id = hash(entry.path)
    record = entry.record
    pct = entry.watched_percentage

    badges = [f'<span class="badge b-folder">{entry.extension.lstrip(".").upper()}</span>']
    if entry.is_watched:
        badges.append('<span class="badge b-success">✓ WATCHED</span>')
    elif pct > 0:
        badges.append(f'<span class="badge b-accent">{int(pct)}%</span>')
    if record and record.watch_count:
        badges.append(f'<span class="badge b-season">×{record.watch_count}</span>')

    with st.container():
        col_info, col_actions = st.columns([0.72, 0.28], gap="small")

        with col_info:
            position = record.last_position if record else 0.0
            duration = record.total_duration if record else 0.0
            html_info = f"""
            <div class="mt-card">
                <div class="card-title">{entry.title or entry.name}</div>
                <div class="badge-container">{"".join(badges)}</div>
                <div class="stats-row">
                    <span>{format_file_size(entry.size)}</span>
                    <span>{format_seconds_to_human_readable(position)} / {format_seconds_to_human_readable(duration)}</span>
                </div>
            </div>
            """
            st.markdown(html_info, unsafe_allow_html=True)
            if pct > 0:
                st.progress(min(pct, 100.0) / 100)

        with col_actions:
            if st.button("▶ Play", key=f"play_{k_id}", use_container_width=True):
                try:
                    result = library_service.play(entry.path)
                except StoreError as e:
                    st.warning(f"Playing, but the watch record could not be saved: {e}")
                else:
                    if not result.success:
                        st.error(f"Failed to open with VLC: {result.message}")
                    elif result.message:
                        st.info(result.message)

            c_folder, c_del = st.columns(2, gap="small")
            with c_folder:
                if st.button("📂", key=f"open_{k_id}", help="Show in File Manager", use_container_width=True):
                    open_in_file_manager(entry.path)
            with c_del:
                if record is not None and st.button("✕", key=f"del_{k_id}", help="Remove from watched",
                                                    use_container_width=True):
                    library_service.remove_from_watched(entry.path)
                    st.rerun()

# === MAIN ENTRY POINT ===
def main():
    settings = load_settings()
    library_service = get_library_service()

    # State initialization
    if 'current_path' not in st.session_state:
        st.session_state.current_path = library_service.restore_last_folder()

    render_sidebar(settings, library_service)

    st.markdown('<div class="main-header">MediaTracker.</div>', unsafe_allow_html=True)

    current = st.session_state.current_path
    if not current:
        st.info("📚 Select a folder to browse your videos.")
        return

    render_breadcrumbs(library_service)
    entries = library_service.open_folder(current)

    col_search, col_sort, col_order = st.columns([0.6, 0.25, 0.15], gap="small")
    query = col_search.text_input("Search", placeholder="Filter this folder...", label_visibility="collapsed")
    sort_key = col_sort.selectbox("Sort by", list(SORT_KEYS), format_func=str.capitalize,
                                  label_visibility="collapsed", key="sort_key")
    descending = col_order.toggle("Desc", key="sort_desc")
    entries = sort_entries([e for e in entries if query.lower() in e.name.lower()], sort_key, descending)

    folders = [e for e in entries if e.is_folder]
    videos = [e for e in entries if not e.is_folder]
    watched = sum(1 for v in videos if v.is_watched)
    st.markdown(f'<div class="sub-header">{len(videos)} videos • {watched} watched</div>', unsafe_allow_html=True)

    for entry in folders:
        render_folder(entry)
    if not videos and not folders:
        st.info("No videos in this folder.")
    for entry in videos:
        render_card(entry, library_service)

if __name__ == "__main__":
    main()
