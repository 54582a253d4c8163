import argparse
import logging
import sys

from lyric_typer.core.errors import PipelineError, ValidationError
from lyric_typer.core.lyrics_resolver import LyricsResolver
from lyric_typer.practice.practice_history import PracticeHistoryStore
from lyric_typer.practice.typing_session import TypingSession
from lyric_typer.storage.lyrics_cache_store import LyricsCacheStore

logger = logging.getLogger(__name__)

LANGUAGE_LABELS = {"ko": "Korean", "en": "English", "mixed": "Mixed"}


def _format_stats(stats):
    return (
        f"Time: {stats.elapsed_time}s | Accuracy: {stats.accuracy:.1f}% | "
        f"CPM: {stats.cpm} | Chars: {stats.correct_chars}/{stats.total_chars}"
    )


def _build_parser():
    parser = argparse.ArgumentParser(description="Practice typing song lyrics line by line")
    parser.add_argument("--db", default=None, help="Lyrics cache database path")
    parser.add_argument("--history-file", default=None, help="Practice history file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show log output")
    sub = parser.add_subparsers(dest="command", required=True)

    practice = sub.add_parser("practice", help="Fetch lyrics and start a typing session")
    practice.add_argument("--artist", required=True)
    practice.add_argument("--title", required=True)

    sub.add_parser("resume", help="Practice the last loaded song again")
    sub.add_parser("history", help="Show saved practice sessions")
    sub.add_parser("songs", help="List cached songs")

    clear = sub.add_parser("clear-history", help="Delete every saved practice session")
    clear.add_argument("--yes", action="store_true", help="Confirm deletion")
    return parser


# Drive one session through the terminal until completion or quit.
def run_session(session, history, input_fn=input, out=print):
    lyrics = session.lyrics
    if lyrics is None or not lyrics.lines:
        out("No lyrics to practice.")
        return None
    out(f"\n{lyrics.title} - {lyrics.artist}")
    out(f"{lyrics.line_count} lines | {LANGUAGE_LABELS.get(lyrics.language.value, lyrics.language.value)}")
    out("Type each line and press Enter. Enter ':q' to stop.\n")

    session.start()
    while not session.is_completed:
        line = session.current_line
        out(f"[{session.current_line_index + 1}/{session.total_lines}] {line.text}")
        try:
            typed = input_fn("> ")
        except EOFError:
            typed = ":q"
        if typed.strip() == ":q":
            session.reset()
            out("Session abandoned.")
            return None
        session.set_input(typed)
        correct, total = session.submit_and_advance()
        out(f"  {correct}/{total} correct | {_format_stats(session.calculate_stats())}")

    stats = session.calculate_stats()
    out("\nDone!")
    out(_format_stats(stats))
    try:
        answer = input_fn("Save this result? [Y/n] ")
    except EOFError:
        answer = "n"
    record = None
    if answer.strip().lower() in {"", "y", "yes"}:
        record = history.save(session)
        out("Saved.")
    session.reset()
    return record


def main(argv=None, input_fn=input, out=print):
    """
    Run the command entry point.

    Returns a process exit code.
    """
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(asctime)s %(message)s",
    )
    store = LyricsCacheStore(db_path=args.db)
    history = PracticeHistoryStore(path=args.history_file)

    if args.command == "history":
        records = history.history
        if not records:
            out("No practice history yet.")
        for i, record in enumerate(records):
            out(f"{i + 1}. {record.title} - {record.artist} ({record.completed_at})")
            out(f"    {_format_stats(record.stats)}")
        return 0

    if args.command == "clear-history":
        if not args.yes:
            out("Refusing to clear history without --yes.")
            return 1
        history.clear()
        out("Practice history cleared.")
        return 0

    if args.command == "songs":
        if not store.ensure_ready():
            out("Lyrics cache is not available.")
            return 1
        songs = store.list_all()
        if not songs:
            out("No cached songs.")
        for song in songs:
            out(f"#{song.id} {song.title} - {song.artist} [{song.language}, {song.line_count} lines]")
        return 0

    if args.command == "resume":
        session = history.restore_session()
        run_session(session, history, input_fn=input_fn, out=out)
        return 0

    store.ensure_ready()
    if not store.is_connected():
        out("(lyrics cache unavailable - results will not be cached)")
    resolver = LyricsResolver(store)
    try:
        lyrics = resolver.resolve(args.artist, args.title)
    except (ValidationError, PipelineError) as e:
        out(f"Error: {e}")
        return 1
    history.remember_lyrics(lyrics)
    session = TypingSession(lyrics=lyrics)
    run_session(session, history, input_fn=input_fn, out=out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
