"""streamchat - streaming Gemini chat relay and local chat session store.

Packages:
- relay: stateless FastAPI endpoint forwarding chats to Gemini
- store: client-side chat threads, send protocol and persistence
"""

__version__ = "0.1.0"
