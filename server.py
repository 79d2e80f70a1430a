import os
import sys
import threading
import time
import webbrowser
from pathlib import Path

import uvicorn

from laterlink.config import load_settings

WATCH_DIR = Path(__file__).resolve().parent / "laterlink"


def run_uvicorn(host: str, port: int):
    """
    Run the FastAPI app via uvicorn in this process
    (called in a background thread).
    """
    config = uvicorn.Config(
        "laterlink.main:app",
        host=host,
        port=port,
        log_level="info",
        reload=False,  # we are doing our own watch/restart
    )
    server = uvicorn.Server(config)
    server.run()


def open_browser_once(host: str, port: int):
    url = f"http://{host}:{port}/"
    print(f"[server] Opening {url}")
    try:
        webbrowser.open(url)
    except webbrowser.Error as e:
        print(f"[server] Could not open a browser: {e}")


def source_mtimes() -> dict:
    return {p: p.stat().st_mtime for p in WATCH_DIR.glob("*.py")}


def main():
    settings = load_settings()

    t = threading.Thread(target=run_uvicorn, args=(settings.host, settings.port), daemon=True)
    t.start()

    # give it a moment to boot before opening browser
    time.sleep(1.0)
    open_browser_once(settings.host, settings.port)

    mtimes = source_mtimes()
    print("[server] Watching for changes. Press Ctrl+C to quit.")

    try:
        while True:
            time.sleep(1.0)
            current = source_mtimes()
            changed = [p for p, m in current.items() if mtimes.get(p) != m]
            mtimes = current
            if not changed:
                continue
            print(f"\n[server] Detected change in {', '.join(p.name for p in changed)}")
            ans = input("Apply changes and restart server? [y/N]: ").strip().lower()
            if ans == "y":
                print("[server] Restarting with new code...")
                # the whole session restarts: signed-in identity comes back from the session file
                os.execv(sys.executable, [sys.executable] + sys.argv)
            else:
                print("[server] Ignoring change. Continuing...")
    except KeyboardInterrupt:
        print("\n[server] Shutting down.")


if __name__ == "__main__":
    main()
