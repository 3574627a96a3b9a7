"""Single-page HTML view of a chat session."""

import html

from ..domain.models import USER_ROLE
from ..prompts import DISCLAIMER, INPUT_PLACEHOLDER
from ..rendering.formatter import format_message

TITLE = "Christian Wisdom Chatbot"

_STYLE = """
body { font-family: sans-serif; background: #f9fafb; margin: 0; }
.chat { display: flex; flex-direction: column; height: 100vh; max-width: 32rem; margin: 0 auto; }
header { background: #fff; padding: 1rem; border-bottom: 1px solid #e5e7eb; }
header h1 { margin: 0; text-align: center; font-size: 1.5rem; }
.session { text-align: center; font-size: 0.75rem; color: #6b7280; }
.session code { background: #f3f4f6; padding: 0 0.25rem; }
.disclaimer { background: #fef9c3; border-left: 4px solid #facc15; padding: 0.5rem; font-size: 0.75rem; }
#messages { flex: 1; overflow-y: auto; padding: 1rem; }
.message { max-width: 85%; padding: 0.75rem; border-radius: 0.75rem; margin-bottom: 1rem; }
.message.user { margin-left: auto; background: #2563eb; color: #fff; }
.message.assistant { margin-right: auto; background: #fff; border: 1px solid #e5e7eb; }
.status { text-align: center; color: #6b7280; padding: 2rem; }
form { display: flex; gap: 0.75rem; padding: 1rem; background: #fff; border-top: 1px solid #e5e7eb; }
form input { flex: 1; padding: 0.75rem; border-radius: 9999px; border: 1px solid #d1d5db; }
"""

TYPING_INDICATOR = '<div class="message assistant typing">...</div>'

_SCRIPT = """
const messages = document.getElementById("messages");
if (messages) { messages.scrollTop = messages.scrollHeight; }

async function waitForReply() {
  for (;;) {
    await new Promise((resolve) => setTimeout(resolve, 1000));
    const response = await fetch("state");
    if (response.ok && !(await response.json()).pending) { break; }
  }
  window.location.reload();
}

if (messages && messages.dataset.pending === "true") { waitForReply(); }

const form = document.getElementById("chat-form");
if (form) {
  form.addEventListener("submit", async (event) => {
    event.preventDefault();
    const input = form.querySelector("input");
    const button = form.querySelector("button");
    const content = input.value.trim();
    if (!content) { return; }
    input.value = "";
    input.disabled = true;
    button.disabled = true;
    button.textContent = "Sending...";
    const bubble = document.createElement("div");
    bubble.className = "message user";
    bubble.textContent = content;
    messages.appendChild(bubble);
    messages.insertAdjacentHTML("beforeend", TYPING_INDICATOR);
    messages.scrollTop = messages.scrollHeight;
    await fetch("messages", {
      method: "POST",
      headers: {"Content-Type": "application/json"},
      body: JSON.stringify({content: content}),
    });
    window.location.reload();
  });
}
"""


def _document(body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{TITLE}</title><style>{_STYLE}</style></head>"
        f"<body>{body}<script>const TYPING_INDICATOR = '{TYPING_INDICATOR}';{_SCRIPT}</script></body></html>"
    )


def render_messages(session) -> str:
    if session.loading:
        return '<div class="status">Loading conversation history...</div>'
    items = []
    for message in session.transcript:
        role = "user" if message.role == USER_ROLE else "assistant"
        items.append(f'<div class="message {role}">{format_message(message.text)}</div>')
    if session.pending:
        items.append(TYPING_INDICATOR)
    return "".join(items)


def render_page(session) -> str:
    """Full page for the session's current state."""
    if not session.auth_ready:
        return _document('<div class="status">Initializing App and Authentication...</div>')

    disabled = "" if session.input_enabled else " disabled"
    button_label = "Sending..." if session.pending else "Send"
    pending = "true" if session.pending else "false"
    user_id = html.escape(session.user_id or "N/A")
    body = (
        '<div class="chat">'
        "<header>"
        f"<h1>{TITLE}</h1>"
        f'<p class="session">User ID: <code>{user_id}</code></p>'
        f'<div class="disclaimer" role="alert">{html.escape(DISCLAIMER)}</div>'
        "</header>"
        f'<div id="messages" data-pending="{pending}">{render_messages(session)}</div>'
        '<form id="chat-form">'
        f'<input type="text" name="content" placeholder="{html.escape(INPUT_PLACEHOLDER)}" required{disabled}>'
        f'<button type="submit"{disabled}>{button_label}</button>'
        "</form>"
        "</div>"
    )
    return _document(body)
