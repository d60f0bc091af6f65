"""
Terminal adapter for the DeepSeek provider.

Architectural role:
- Resolves role configurations once at startup and builds `LLMService`.
- Exposes one-shot (`run`), interactive (`session`) and diagnostic
  (`models`, `config`) commands.
- Delegates all model calls to `deepseek_provider.llm.service`.

Request lifecycle (per user turn, `session`):
1. Read stdin.
2. Handle local control commands (`exit`/`quit`, `clear chat`).
3. Route `/plan <task>` to the planner role, everything else to the lead role.
4. Print streamed fragments as they arrive.

Error handling strategy:
- `ConfigError` aborts startup with exit status 2.
- `ClientError` aborts `run`/`models` with exit status 1; inside `session`
  the error is printed and the loop continues.
- EOF and keyboard interrupts at the prompt terminate the loop without
  traceback output. An interrupt while a reply is printing cancels that reply
  only; the turn is dropped from history.

Side effects:
- Loads `.env` from the working directory via `load_dotenv()`.
- Writes to stdout; logs go to stderr through `logging_config`.
"""

import argparse
import logging
import sys

from dotenv import load_dotenv

from deepseek_provider.llm.errors import ClientError, ConfigError
from deepseek_provider.llm.provider_config import PROVIDERS, Role, resolve_roles
from deepseek_provider.llm.service import LLMService, route_prompt
from deepseek_provider.logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CLIENT_ERROR = 1
EXIT_CONFIG_ERROR = 2


# =========================================================
# OUTPUT
# =========================================================

def render(result, out=None) -> str:
    """Print a stream fragment-by-fragment or a complete response at once."""
    out = out or sys.stdout
    if hasattr(result, "__iter__") and not isinstance(result, str):
        with result:
            for fragment in result:
                out.write(fragment)
                out.flush()
        out.write("\n")
        return result.text

    out.write(result.text + "\n")
    return result.text


# =========================================================
# COMMANDS
# =========================================================

def cmd_run(service: LLMService, args) -> int:
    role = Role(args.role) if args.role else None
    try:
        render(service.generate_answer(args.text, role=role, stream=not args.no_stream))
    except ValueError as err:
        print(f"Invalid prompt: {err}", file=sys.stderr)
        return EXIT_CLIENT_ERROR
    except ClientError as err:
        print(f"Request failed: {err}", file=sys.stderr)
        return EXIT_CLIENT_ERROR
    return EXIT_OK


def cmd_models(service: LLMService, args) -> int:
    try:
        models = service.client(Role.LEAD).fetch_supported_models()
    except ClientError as err:
        print(f"Request failed: {err}", file=sys.stderr)
        return EXIT_CLIENT_ERROR

    for model in models:
        print(model)
    return EXIT_OK


def cmd_config(service: LLMService, args) -> int:
    for role, config in service.role_configs.items():
        metadata = PROVIDERS[config.provider]
        print(f"[{role.value}]")
        print(f"  provider: {metadata.display_name} ({config.provider})")
        print(f"  model:    {config.model}")
        print(f"  url:      {config.url}")
        print(f"  timeout:  {config.timeout_seconds}s")
        print(f"  api key:  {config.masked_api_key()}")
        if config.custom_headers:
            print(f"  headers:  {', '.join(sorted(config.custom_headers))}")
    return EXIT_OK


def cmd_session(service: LLMService, args) -> int:
    """
    Run the interactive loop.

    History is kept in memory for the lead role only; planner turns are
    one-shot and do not enter the conversation.
    """
    history = []

    print("DeepSeek session started. (Type 'exit' to quit, '/plan <task>' to plan)")
    for role, config in service.role_configs.items():
        print(f"{role.value}: {config.model}")
    print("-" * 60)

    while True:

        try:
            question = input("Question: ").strip()

        except EOFError:
            print("\nSession ended (EOF received).")
            break

        except KeyboardInterrupt:
            print("\nOperation cancelled by user.")
            break

        if not question:
            continue

        # EXIT
        if question.lower() in ("exit", "quit"):
            print("Shutting down.")
            break

        # CLEAR CHAT
        if question.lower() in ("empty chat", "clear chat"):
            history.clear()
            print("Chat cleared.")
            continue

        role, text = route_prompt(question)
        if not text:
            print(f"Usage: {question.split()[0]} <task>")
            continue

        print("\nResponse:\n")

        try:
            answer = render(service.generate_answer(
                text,
                role=role,
                stream=not args.no_stream,
                history=history if role is Role.LEAD else None,
            ))
        except ClientError as err:
            print(f"\nRequest failed: {err}")
            continue
        except KeyboardInterrupt:
            print("\nResponse cancelled.")
            continue

        if role is Role.LEAD:
            history.append({"role": "user", "content": text})
            history.append({"role": "assistant", "content": answer})

        print("\n" + "-" * 60 + "\n")

    return EXIT_OK


COMMANDS = {
    "run": cmd_run,
    "session": cmd_session,
    "models": cmd_models,
    "config": cmd_config,
}


# =========================================================
# MAIN
# =========================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deepseek-provider",
        description="Chat with DeepSeek models configured through environment variables.",
    )
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL (default INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Send a single prompt")
    run.add_argument("--text", required=True, help="Prompt text; prefix with /plan for the planner role")
    run.add_argument("--role", choices=[role.value for role in Role], default=None)
    run.add_argument("--no-stream", action="store_true", help="Wait for the complete response")

    session = sub.add_parser("session", help="Start an interactive session")
    session.add_argument("--no-stream", action="store_true", help="Wait for complete responses")

    sub.add_parser("models", help="List models offered by the provider")
    sub.add_parser("config", help="Show the resolved configuration per role")
    return parser


def main(argv=None, session=None) -> int:
    """Entry point for the `deepseek-provider` console script."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        role_configs = resolve_roles()
    except ConfigError as err:
        print(f"Configuration error: {err}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger.debug("Resolved role configurations: %r", role_configs)
    service = LLMService(role_configs, session=session)
    try:
        return COMMANDS[args.command](service, args)
    finally:
        service.close()


if __name__ == "__main__":
    sys.exit(main())
