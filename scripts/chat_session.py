"""
Interactive chat with the Locus agent against in-memory tasks, sprints and docs.

Usage:
  cd locus-agent && python scripts/chat_session.py [MODEL_ID]

Example:
  python scripts/chat_session.py claude-haiku-4-5

Commands inside the session:
  /state   print the current state snapshot (JSON)
  /intent  <message>  detect intent only and park the message
  /run     execute the parked message
  /quit    exit
"""

import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from dotenv import load_dotenv

load_dotenv()

from locus_agent.graph.agent import LocusAgent, PendingExecutionNotFoundError
from locus_agent.graph.llm import get_model_provider
from locus_agent.services.memory import InMemoryLocusProvider


def print_response(response):
    print(f"\nassistant> {response.content}\n")
    for artifact in response.artifacts:
        print(f"  [{artifact.type}] {artifact.title} ({artifact.id})")
    for i, action in enumerate(response.suggested_actions, start=1):
        print(f"  ({i}) {action.label}  <{action.type}>")


async def main():
    model_id = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        model = get_model_provider(model_id)
    except ValueError as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)

    agent = LocusAgent(model, provider=InMemoryLocusProvider(), workspace_id="local")
    pending_id = None
    print("Locus agent ready. Type /quit to exit.")

    while True:
        try:
            line = input("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not line:
            continue
        if line == "/quit":
            break
        if line == "/state":
            print(json.dumps(agent.get_state().model_dump(mode="json", by_alias=True), indent=2))
            continue
        if line.startswith("/intent "):
            detection = await agent.detect_intent(line[len("/intent "):])
            pending_id = detection.execution_id
            print(f"  intent: {detection.intent.value}  (run with /run)")
            continue
        if line == "/run":
            try:
                print_response(await agent.execute_pending(pending_id or ""))
            except PendingExecutionNotFoundError as exc:
                print(f"  {exc}")
            pending_id = None
            continue

        print_response(await agent.handle_message(line))

        state = agent.get_state()
        print(f"  mode={state.mode.value} completeness={state.manifest.completeness_score}%")


if __name__ == "__main__":
    asyncio.run(main())
