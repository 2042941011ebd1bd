"""Centralized message templates for Discord notifications.

All user-facing message strings are defined here so the bot's voice
can be changed in one place.
"""


def _mention(user_id: str) -> str:
    return f"<@{user_id}>"


def pester(*, user_id: str, title: str, partner_id: str | None = None, due_at: int = 0) -> str:
    message = f"hey {_mention(user_id)}! {title} still isn't finished yet >:c"

    if partner_id:
        message += f"\n{_mention(partner_id)} would be _very_ upset with you if you didn't finish on time."

    if due_at:
        message += f"\n\nyou have until <t:{due_at}>. use your time wisely."

    return message


def reminder(*, user_id: str, title: str, due_at: int) -> str:
    return f"hey {_mention(user_id)}! you have until <t:{due_at}:R> to finish the following task:\n{title}"


def overdue(*, user_id: str, title: str, partner_id: str | None = None) -> str:
    message = f"your time to complete {title} is up, {_mention(user_id)}. i am very disappointed in you."

    if partner_id:
        message += f"\n\n{_mention(partner_id)}, how could you let this happen?"

    return message


def accountability_request(*, requesting_user: str, title: str, url: str) -> str:
    return (
        f"Accountability Request\n\n"
        f"{_mention(requesting_user)} has requested you as an accountability partner.\n"
        f"Task: {title}\n{url}"
    )


def accountability_response(*, requested_user: str, title: str, accepted: bool) -> str:
    if accepted:
        return (
            f"{_mention(requested_user)} accepted your accountability request for {title}. "
            f"you'll need their approval on your proof before you can check it off."
        )
    return f"{_mention(requested_user)} rejected your accountability request for {title}. you're on your own."


def proof_submitted(*, user_id: str, title: str, proof_id: str, url: str) -> str:
    return (
        f"{_mention(user_id)} says they finished {title}. take a look at their proof "
        f"and approve or reject it (proof {proof_id}).\n{url}"
    )


def proof_reviewed(*, reviewer: str, title: str, approved: bool) -> str:
    if approved:
        return f"{_mention(reviewer)} approved your proof for {title}. go check it off!"
    return f"{_mention(reviewer)} rejected your proof for {title}. try again and resubmit."

