"""
Prompt builders for provider calls

Every prompt asks for a single JSON value; responses go through the
response sanitizer before anything reads them.
"""

from typing import Iterable, List, Optional

from .models import Message, ThreadCapsule


def format_messages(capsule: ThreadCapsule, messages: Iterable[Message]) -> str:
    lines: List[str] = []
    for message in messages:
        name = capsule.participant_name(message.participant_id)
        lines.append(f"[{message.timestamp:%Y-%m-%d %H:%M}] {name} (ID: {message.id}):")
        lines.append(message.content)
        lines.append("")
    return "\n".join(lines)


def format_conversation(capsule: ThreadCapsule) -> str:
    """Header block plus every message, tagged with its id"""
    meta = capsule.thread_metadata
    header = [
        f"Thread: {meta.subject}",
        f"Platform: {meta.platform}",
        f"Participants: {', '.join(p.name for p in capsule.participants)}",
        f"Started: {meta.start_date}",
        f"Total Messages: {len(capsule.messages)}",
        "",
        "Messages:",
        "---",
    ]
    return "\n".join(header) + "\n" + format_messages(capsule, capsule.messages)


def build_parse_prompt(conversation_text: str, source_type: str) -> str:
    return f"""Parse the following {source_type} conversation and extract structured data.

Conversation:
{conversation_text}

Provide a JSON response with the following structure:
{{
  "participants": [
    {{"name": "participant name", "email": "email if available"}}
  ],
  "messages": [
    {{
      "sender": "participant name",
      "timestamp": "ISO 8601 timestamp if available",
      "content": "message content",
      "inReplyTo": "1-based number of the message this one answers, if clear"
    }}
  ]
}}

Instructions:
1. Identify all unique participants
2. Extract each message with its sender and timestamp
3. For emails, parse headers (From, To, Subject, Date)
4. For chat messages, identify username and timestamp patterns
5. Remove quoted text from email bodies
6. Preserve chronological order
7. If timestamps are not provided, leave them empty
8. Return ONLY valid JSON, no additional text"""


def build_misalignment_prompt(capsule: ThreadCapsule, excerpts: List[List[Message]]) -> str:
    blocks = []
    for index, excerpt in enumerate(excerpts, start=1):
        blocks.append(f"Excerpt {index}:\n{format_messages(capsule, excerpt)}")
    joined = "\n".join(blocks)
    return f"""Each excerpt below contains a statement that may reveal a misalignment: participants holding different expectations, understandings or goals.

For each real misalignment:
- type: Priority, Understanding, Goal, Assumption, Timeline or Ownership
- severity: Low, Moderate or High
- description: what is misaligned
- participantsInvolved: names of who is affected
- messageIds: ids of the messages involved (use the IDs shown)
- suggestedResolution: how to address it

Return as JSON:
{{
  "misalignments": [
    {{
      "type": "string",
      "severity": "string",
      "description": "string",
      "participantsInvolved": ["string"],
      "messageIds": ["string"],
      "suggestedResolution": "string"
    }}
  ]
}}

Return an empty list when none of the excerpts shows a real misalignment.

{joined}"""


def build_suggestions_prompt(capsule: ThreadCapsule, findings: List[str]) -> str:
    summary = "\n".join(f"- {finding}" for finding in findings) or "- No notable findings"
    return f"""Based on this conversation, suggest 3-5 actionable next steps.

Findings so far:
{summary}

Return suggestions as JSON:
{{
  "suggestions": [
    {{
      "action": "suggestion text",
      "priority": "Low|Medium|High",
      "reasoning": "why this action is recommended",
      "evidence": ["quote or observation supporting this"],
      "messageIds": ["ids of the messages the suggestion is about"]
    }}
  ]
}}

Conversation:
{format_conversation(capsule)}"""


def build_draft_prompt(capsule: ThreadCapsule, draft_text: str, outstanding: List[str],
                       author: Optional[str] = None) -> str:
    questions = "\n".join(f"{i}. {q}" for i, q in enumerate(outstanding, start=1)) or "(none)"
    author_line = f"The draft is written by {author}.\n" if author else ""
    return f"""Review a draft reply in the context of the conversation below.
{author_line}
Outstanding questions the reply should address:
{questions}

Draft reply:
\"\"\"
{draft_text}
\"\"\"

Return ONLY valid JSON:
{{
  "tone": {{
    "tone": "e.g. professional, defensive, friendly",
    "matchesConversationTone": true,
    "escalationRisk": "none|low|medium|high",
    "explanation": "string"
  }},
  "questionsCovered": [
    {{"question": "outstanding question text", "addressed": true, "howAddressed": "string"}}
  ],
  "newQuestionsIntroduced": ["string"],
  "riskFlags": [
    {{"type": "string", "description": "string", "severity": "low|medium|high", "suggestion": "string"}}
  ],
  "completenessScore": 0,
  "suggestions": ["string"],
  "overallAssessment": "string",
  "readyToSend": false
}}

completenessScore is an integer from 0 to 10. List every outstanding question under questionsCovered.

Conversation:
{format_conversation(capsule)}"""
