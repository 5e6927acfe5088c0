"""Minimal demonstration of the webhook relay."""

import asyncio
import sys

from relay_core import create_session

if __name__ == "__main__":
    question = " ".join(sys.argv[1:]) or "What were last week's top support topics?"

    async def main() -> None:
        session = create_session()
        print("bot:", session.messages.value[0].content)
        session.messages.subscribe(lambda msgs: print(f"{msgs[-1].sender}: {msgs[-1].content}"))
        await session.send(question)

    asyncio.run(main())
