"""
CallScript definitions.

A call script is the task prose handed to the provider's voice agent. The
orchestration never builds this text itself; it receives the rendered
script as configuration. Placeholders use str.format, so literal braces
the agent should read back are doubled.
"""
from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class CallScript:
    """
    A named, renderable call script.

    Attributes:
        name: Registry key (e.g., "email_capture")
        description: What the call is for, for debugging and listings
        template: Task text with {name}, {company} and {product} placeholders
    """
    name: str
    description: str
    template: str

    def render(self, lead_name: str, company: str = "our service", product: str = "our services") -> str:
        return self.template.format(
            name=lead_name or "there",
            company=company,
            product=product,
        ).strip()


BASIC_SCRIPT = CallScript(
    name="basic",
    description="Short introduction asking for the lead's email username and domain",
    template=(
        "Hello {name}, this is a call from {company}. "
        "Please respond with your username and domain."
    ),
)


EMAIL_CAPTURE_SCRIPT = CallScript(
    name="email_capture",
    description="Collects the lead's email address, spelled out character by character",
    template="""
Hello {name}, this is a call from {company}. Please respond with your username and domain for your email.
If we don't understand, you can spell each part one character at a time.

Agent: Let's start with your username. Please spell it out, one letter at a time. For example, A as in Alpha.

Wait for the caller to finish.

Agent: Thank you. Now please spell your domain, such as gmail.com, one letter at a time.

Wait for the caller to finish.

Agent: I think I have it. You said {{username}} at {{domain}}. Is that correct? Please confirm.
""",
)


QUALIFICATION_SCRIPT = CallScript(
    name="qualification",
    description="Verifies the lead's email, qualifies interest and offers a follow-up",
    template="""
Greeting and verification:
Hello {name}, this is a call from {company}. I'm an AI assistant calling to help you.
For security, could you confirm your email address?

Email capture:
Please tell me the username and domain of your email.
If I don't understand, you can spell each part one character at a time.
Agent: I think I have it. You said {{username}} at {{domain}}. Is that correct?

Qualification:
Thank you, {name}. I see you're interested in learning more about {product}.
Could I confirm a few details so we can guide you appropriately?

Assistance:
Can you briefly describe what you need help with?

Escalation:
Thank you for your patience, {name}. Based on what you've told me, I'll connect you
with a team member who can help further.

Follow-up:
We'd like to schedule a follow-up call. What day and time works best for you?
""",
)


SCRIPTS: Dict[str, CallScript] = {
    "basic": BASIC_SCRIPT,
    "email_capture": EMAIL_CAPTURE_SCRIPT,
    "qualification": QUALIFICATION_SCRIPT,
}


def get_call_script(name: str) -> CallScript:
    """
    Get the CallScript registered under `name`.

    Raises:
        ValueError: If no script has that name.
    """
    script = SCRIPTS.get(name)
    if script is None:
        raise ValueError(f"Unknown call script: {name}. Valid scripts: {list(SCRIPTS.keys())}")
    return script


def render_call_script(name: str, lead_name: str, company: str = "our service", product: str = "our services") -> str:
    return get_call_script(name).render(lead_name, company=company, product=product)
