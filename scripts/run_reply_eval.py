#!/usr/bin/env python3
"""
Run a question set through the live reply pipeline and score the answers.
Usage: python scripts/run_reply_eval.py <questions.json>

The file holds {"testCases": [{"id", "question", "expectedAnswer": {"mustContain",
"shouldContain", "shouldNotContain"}}]}. Requires OpenAI and Chroma to be reachable.
"""

import asyncio
import json
import sys

from app.config import settings
from app.dependencies import get_knowledge_base, get_reply_service
from app.logging_config import setup_logging
from app.services.reply_evaluation import evaluate_answer, wrap_rtl


async def run(test_cases: list) -> int:
    if not await get_knowledge_base().warm_up():
        print("Cannot reach the Chroma collection", file=sys.stderr)
        return 1

    reply_service = get_reply_service()
    passed = 0
    for index, case in enumerate(test_cases, start=1):
        case_id = case.get("id") or f"case-{index}"
        expected = case.get("expectedAnswer", {})
        print(f"\n[{case_id}] {wrap_rtl(case['question'])}")

        conversation_id = f"eval-{case_id}"
        try:
            result = await reply_service.generate_reply(conversation_id, case["question"])
        except Exception as exc:
            print(f"  ERROR: {exc}")
            continue
        finally:
            reply_service.reset_conversation(conversation_id)

        evaluation = evaluate_answer(
            result.response,
            expected.get("mustContain", []),
            expected.get("shouldContain", []),
            expected.get("shouldNotContain", []),
        )
        passed += evaluation.passed
        print(f"  {wrap_rtl(result.response)}")
        print(f"  {json.dumps(evaluation.summary())}")
        print(
            f"  tokens: request={result.tokens.request_tokens} knowledge={result.tokens.knowledge_tokens} "
            f"chunks={result.knowledge.chunks_used}/{result.knowledge.original_chunks} fallback={result.fallback}"
        )

    print(f"\nPassed {passed}/{len(test_cases)}")
    return 0 if passed == len(test_cases) else 2


def main():
    setup_logging(settings.log_level)
    if len(sys.argv) < 2:
        print("Usage: python scripts/run_reply_eval.py <questions.json>")
        sys.exit(1)

    with open(sys.argv[1], "r", encoding="utf-8") as f:
        test_cases = json.load(f).get("testCases", [])

    sys.exit(asyncio.run(run(test_cases)))


if __name__ == "__main__":
    main()
