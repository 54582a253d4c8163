import logging

from lyric_typer.config import settings
from lyric_typer.web_api.web_app import app, lyrics_store


def warmup() -> None:
    """
    Open the lyrics cache before serving.

    A missing cache is reported but does not stop the server.
    """
    print("[startup] Initializing lyrics cache...", flush=True)
    if lyrics_store.ensure_ready():
        print("[startup] Lyrics cache ready.", flush=True)
    else:
        print("[startup] Running without lyrics caching.", flush=True)
    print(f"[startup] Lyric Typer API listening on http://127.0.0.1:{settings.API_PORT}", flush=True)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="[%(levelname)s] %(asctime)s %(message)s",
    )
    logging.getLogger("werkzeug").setLevel(logging.ERROR)
    warmup()
    app.run(debug=False, use_reloader=False, port=settings.API_PORT, host=settings.API_HOST)


if __name__ == "__main__":
    main()
