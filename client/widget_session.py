# client/widget_session.py
"""
Client side of the chat widget: keeps the session id between runs, replays
history on start-up and turns every failure into a friendly sentence.
"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

SEND_FAILED_MESSAGE = "Sorry, we couldn't send your message. Please try again."
SESSION_EXPIRED_MESSAGE = "Your previous conversation has expired. Please send your message again to start a new one."


class SessionStore:
    """The widget's local storage: one JSON file holding the session id."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or os.getenv("CHAT_SESSION_FILE", ".chat_session.json"))

    def load(self) -> Optional[str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        session_id = data.get("sessionId") if isinstance(data, dict) else None
        return session_id or None

    def save(self, session_id: str):
        self.path.write_text(json.dumps({"sessionId": session_id}), encoding="utf-8")

    def clear(self):
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class ChatWidgetSession:
    def __init__(self, base_url: Optional[str] = None, store: Optional[SessionStore] = None,
                 client: Optional[httpx.Client] = None, timeout: float = 60.0):
        base_url = base_url or os.getenv("CHAT_API_URL", "http://localhost:8000")
        self.store = store or SessionStore()
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.session_id = self.store.load()
        self.messages: List[Dict] = []

    def restore(self) -> List[Dict]:
        """
        Replay the stored conversation. Any failure forgets the session
        silently and starts fresh.
        """
        if not self.session_id:
            return []
        try:
            response = self.client.get("/api/chat/message", params={"sessionId": self.session_id})
            response.raise_for_status()
            self.messages = list(response.json()["messages"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.info("[Widget] could not restore session %s: %s", self.session_id, e)
            self.reset()
        return self.messages

    def send(self, text: str) -> str:
        """Send `text` and return the reply, or a friendly error sentence."""
        self.messages.append({"sender": "user", "text": text})
        payload = {"message": text}
        if self.session_id:
            payload["sessionId"] = self.session_id

        try:
            response = self.client.post("/api/chat/message", json=payload)
        except httpx.HTTPError as e:
            logger.warning("[Widget] send failed: %s", e)
            return SEND_FAILED_MESSAGE

        if response.status_code == 404:
            self.reset()
            return SESSION_EXPIRED_MESSAGE
        if response.status_code != 200:
            logger.warning("[Widget] send failed with status %s", response.status_code)
            return SEND_FAILED_MESSAGE

        try:
            data = response.json()
            reply = data["reply"]
            session_id = data["sessionId"]
        except (ValueError, KeyError, TypeError):
            return SEND_FAILED_MESSAGE

        if session_id != self.session_id:
            self.session_id = session_id
            self.store.save(session_id)
        self.messages.append({"id": data.get("messageId"), "sender": "assistant",
                              "text": reply, "timestamp": data.get("timestamp")})
        return reply

    def reset(self):
        self.session_id = None
        self.messages = []
        self.store.clear()

    def close(self):
        self.client.close()


if __name__ == "__main__":
    from dotenv import load_dotenv

    load_dotenv()
    session = ChatWidgetSession()
    for msg in session.restore():
        print(f"{msg['sender']}: {msg['text']}")
    try:
        while True:
            text = input("you: ").strip()
            if text:
                print(f"assistant: {session.send(text)}")
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        session.close()
