import argparse
import asyncio
import logging
import sys

from mock_interview.core.config import EXCHANGE_BASE_URL, SessionTimings
from mock_interview.core.logger import configure_logging
from mock_interview.session.models import CompletionResult, DemoContext
from mock_interview.session.status import SessionStatus, StatusEmitter

logger = logging.getLogger("cli")


def _print_status(status: SessionStatus) -> None:
    if status.error:
        print(f"[error] {status.error}", flush=True)
    elif status.info:
        print(f"[{'mic' if status.streaming else 'ai' if status.playing else 'info'}] {status.info}", flush=True)


def _print_result(result: CompletionResult) -> None:
    print(f"\nInterview {result.interview_id} finished with {len(result.turns)} answered question(s).")
    if result.feedback is None:
        print(result.message or "No feedback was generated.")
        return
    feedback = result.feedback
    print(f"Overall score: {feedback.overall_score}/100")
    for title, items in (
        ("Strengths", feedback.strengths),
        ("Weaknesses", feedback.weaknesses),
        ("Recommendations", feedback.recommendations),
    ):
        if items:
            print(f"\n{title}:")
            for item in items:
                print(f"  - {item}")
    if feedback.detailed_analysis:
        print(f"\n{feedback.detailed_analysis}")


async def run_session(args: argparse.Namespace) -> int:
    from mock_interview.audio.player import FfplayAudioOutput
    from mock_interview.capture.microphone import SoundDeviceMicrophoneSource
    from mock_interview.exchange.client import ExchangeClient
    from mock_interview.services.deepgram_service import DeepgramConnector
    from mock_interview.session.controller import InterviewSessionController

    timings = SessionTimings()
    exchange = ExchangeClient(base_url=args.base_url)
    demo = None
    if args.job_title:
        demo = DemoContext(
            job_title=args.job_title,
            job_description=args.job_description or "",
            difficulty=args.difficulty,
        )
    controller = InterviewSessionController(
        args.interview_id,
        exchange,
        audio_output=FfplayAudioOutput(),
        microphone=SoundDeviceMicrophoneSource(timings.sample_rate, timings.chunk_ms),
        connector=DeepgramConnector(),
        timings=timings,
        emitter=StatusEmitter(send_fn=_print_status),
        demo=demo,
    )

    try:
        if not await controller.initialize():
            return 1
        print("Press Enter to finish the interview, or type 'r' + Enter to re-open the microphone.")
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if line.strip().lower() == "r":
                controller.resume_listening()
                continue
            break
        result = await controller.complete()
        _print_result(result)
        return 0
    finally:
        controller.teardown()
        await exchange.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="AI mock interview voice tools")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the interview API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    session = subparsers.add_parser("session", help="Run a live voice interview session")
    session.add_argument("interview_id")
    session.add_argument("--base-url", default=EXCHANGE_BASE_URL)
    session.add_argument("--job-title", default=None, help="Job title for demo_ sessions")
    session.add_argument("--job-description", default=None)
    session.add_argument("--difficulty", default="medium", choices=["easy", "medium", "hard"])

    args = parser.parse_args(argv)
    configure_logging()

    if args.command == "serve":
        import uvicorn

        uvicorn.run("mock_interview.main:app", host=args.host, port=args.port)
        return 0

    try:
        return asyncio.run(run_session(args))
    except KeyboardInterrupt:
        logger.info("session interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
