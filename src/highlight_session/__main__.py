import asyncio

from dotenv import load_dotenv
from loguru import logger

from highlight_session.app_config import load_json_config, parse_app_config, resolve_runtime_env
from highlight_session.bootstrap import BootOutcome, bootstrap_runtime


def format_outcome_lines(outcome: BootOutcome) -> list[str]:
    lines = [f"Verdict: {outcome.verdict.value}"]
    if outcome.reaped:
        lines.append(f"Reaped sessions: {', '.join(outcome.reaped)}")
    if outcome.cleaned_up:
        lines.append("Previous session was closed; its data has been removed.")
    elif outcome.error is not None:
        lines.append(f"Error: {outcome.error}")
    elif outcome.state is None:
        lines.append("No previous session to restore.")
    else:
        state = outcome.state
        metadata = state.media.metadata
        lines.append(f"Media: {metadata.name} ({metadata.size:,} bytes, {metadata.duration:.1f}s)")
        lines.append(
            f"Transcript: {len(state.transcript.sections)} sections, "
            f"{len(state.transcript.all_sentences())} sentences"
        )
        for highlight in state.highlights:
            lines.append(f"Highlight: {highlight.name} ({highlight.selected_count} sentences)")
        if state.needs_resupply:
            lines.append("Media bytes were not kept; the file must be provided again.")
    return lines


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    runtime = bootstrap_runtime(app, resolve_runtime_env())
    try:
        outcome = await runtime.boot()
        print(f"highlight-session (session: {runtime.context.session_id})")
        for line in format_outcome_lines(outcome):
            print(f"  {line}")
        if runtime.log_descriptions:
            print(f"  Logging: {', '.join(runtime.log_descriptions)}")
    except Exception as ex:
        logger.error(f"Startup failed: {ex}")
        raise
    finally:
        runtime.close()


if __name__ == "__main__":
    asyncio.run(main())
