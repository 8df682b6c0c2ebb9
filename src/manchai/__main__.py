"""Main entry point for ManchAI.

Three ways to run the studio:
- ``serve``: the HTTP API (POST /api/scene/turn) under uvicorn
- ``studio``: an interactive console that plays each turn's lines aloud
- ``turn``: a single turn against an optional scene file, printed as JSON
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .core.config import StudioConfig
from .core.scene_state import SceneState
from .core.turn_orchestrator import TurnError, close_orchestrator, create_orchestrator
from .playback.players import HeadlessAudioPlayer, PydubAudioPlayer
from .playback.sequencer import PlaybackSequencer, PlaybackSnapshot
from .playback.studio import StudioSession
from .utils.logger import setup_logger

logger = logging.getLogger("manchai")

STUDIO_HELP = """Type a direction and press Enter.
  /auto   toggle auto-continue
  /stop   stop playback (also: any command containing stop, end or pause)
  /quit   leave the studio"""


def serve(config: StudioConfig) -> None:
    import uvicorn

    uvicorn.run(
        "manchai.server.app:create_app",
        factory=True,
        host=config.host,
        port=config.port,
    )


async def run_studio(config: StudioConfig, headless: bool = False) -> None:
    """Interactive director's console."""
    orchestrator = create_orchestrator(config)
    session: Optional[StudioSession] = None

    def show_line(snapshot: PlaybackSnapshot) -> None:
        if session is None or session.scene is None or snapshot.current_line_id is None:
            return
        line = next((ln for ln in session.scene.lines if ln.id == snapshot.current_line_id), None)
        if line is None:
            return
        actor = session.scene.get_actor(line.actor_id)
        name = actor.name if actor else "Unknown"
        marker = " (no audio)" if snapshot.degraded else ""
        print(f"  [{line.beat_index}] {name}: {line.text}{marker}")

    player = HeadlessAudioPlayer() if headless else PydubAudioPlayer()
    sequencer = PlaybackSequencer(
        player,
        degraded_dwell_s=config.degraded_dwell_s,
        timeout_s=config.playback_timeout_s,
        on_change=show_line,
    )
    session = StudioSession(
        orchestrator,
        sequencer,
        auto_continue=config.auto_continue,
        auto_continue_delay_s=config.auto_continue_delay_s,
        on_notice=lambda message: print(f"! {message}"),
    )

    print(STUDIO_HELP)
    print(f"Auto-continue is {'on' if session.auto_continue else 'off'}.\n")

    try:
        while True:
            try:
                command = (await asyncio.to_thread(input, "direction> ")).strip()
            except EOFError:
                break

            if not command:
                continue
            if command == "/quit":
                break
            if command == "/stop":
                session.stop()
                continue
            if command == "/auto":
                enabled = session.toggle_auto_continue()
                print(f"Auto-continue is {'on' if enabled else 'off'}.")
                continue

            result = await session.send_direction(command)
            if result is not None:
                scene = result.scene_state
                print(f"\n{scene.title} ({scene.genre}) - {scene.setting}")
    finally:
        await session.close()
        await close_orchestrator(orchestrator)


async def run_single_turn(config: StudioConfig, command: str, scene_file: Optional[str]) -> int:
    """Run one turn and print ``{sceneState, newLines}`` to stdout."""
    scene = None
    if scene_file:
        try:
            data = json.loads(Path(scene_file).read_text())
            scene = SceneState.from_dict(data.get("sceneState", data))
        except (OSError, json.JSONDecodeError, ValueError, AttributeError) as e:
            logger.error(f"Could not load scene from {scene_file}: {e}")
            return 2

    orchestrator = create_orchestrator(config)
    try:
        result = await orchestrator.process_turn(scene, command)
    except TurnError as e:
        logger.error(f"Turn failed: {e}")
        return 1
    finally:
        await close_orchestrator(orchestrator)

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="manchai", description="ManchAI improv studio")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", action="store_true", help="Also log to data/logs/")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    studio_parser = subparsers.add_parser("studio", help="Interactive console")
    studio_parser.add_argument("--headless", action="store_true", help="Do not play sound")

    turn_parser = subparsers.add_parser("turn", help="Run a single turn")
    turn_parser.add_argument("direction", help="Director command")
    turn_parser.add_argument("--scene", default=None, help="JSON file with a scene state")

    return parser


def main(argv=None):
    """Main entry point for ManchAI."""
    args = build_parser().parse_args(argv)

    # Load environment variables
    load_dotenv()

    overrides = {}
    if args.verbose:
        overrides["verbose"] = True
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    config = StudioConfig.from_env(**overrides)

    setup_logger(verbose=config.verbose, save_to_file=args.log_file or config.save_logs)

    if not config.director_enabled:
        logger.warning("OPENAI_API_KEY not set. Using the fallback director.")
    if not config.tts_enabled:
        logger.warning("ELEVENLABS_API_KEY not set. Lines will have no audio.")

    if args.command == "serve":
        serve(config)
        return

    try:
        if args.command == "studio":
            asyncio.run(run_studio(config, headless=args.headless))
        else:
            sys.exit(asyncio.run(run_single_turn(config, args.direction, args.scene)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
