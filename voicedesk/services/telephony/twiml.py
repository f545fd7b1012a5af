"""TwiML builders for carrier webhook responses."""
import re
from typing import Optional

SIP_PHONE_PATTERN = re.compile(r"sip:(\+?\d+)@")

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>'
SAY_VOICE = "Polly.Joanna-Neural"


def escape_xml(text: str) -> str:
    """Escape XML special characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def extract_phone_from_sip(address: Optional[str]) -> Optional[str]:
    """
    Return the phone number inside a SIP URI, or the address unchanged.

    sip:+390200000001@trunk.example.com -> +390200000001
    """
    if not address:
        return address
    match = SIP_PHONE_PATTERN.search(address)
    return match.group(1) if match else address


def to_websocket_url(base_url: str) -> str:
    """https://host -> wss://host (http -> ws)."""
    if base_url.startswith("https://"):
        return "wss://" + base_url[len("https://"):]
    if base_url.startswith("http://"):
        return "ws://" + base_url[len("http://"):]
    return base_url


class TwiMLBuilder:
    """Generates the TwiML documents returned to the carrier."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    @property
    def stream_url(self) -> str:
        return f"{to_websocket_url(self.base_url)}/media-stream"

    @property
    def transfer_complete_url(self) -> str:
        return f"{self.base_url}/transfer-complete"

    def _stream(self, from_number: Optional[str], to_number: Optional[str], outbound: bool) -> str:
        params = []
        if from_number:
            params.append(f'<Parameter name="from" value="{escape_xml(from_number)}"/>')
        if to_number:
            params.append(f'<Parameter name="to" value="{escape_xml(to_number)}"/>')
        if outbound:
            params.append('<Parameter name="outbound" value="true"/>')
        inner = "\n            ".join(params)
        return f"""<Connect action="{escape_xml(self.transfer_complete_url)}">
        <Stream url="{escape_xml(self.stream_url)}">
            {inner}
        </Stream>
    </Connect>"""

    def connect_stream(
        self, from_number: Optional[str], to_number: Optional[str], outbound: bool = False
    ) -> str:
        """
        Connect the call to our media stream.

        When the stream ends the carrier requests the Connect action URL,
        which decides whether the call is transferred or hung up.
        """
        return f"""{XML_HEADER}
<Response>
    {self._stream(from_number, to_number, outbound)}
</Response>"""

    def say_then_connect_stream(
        self, text: str, from_number: Optional[str], to_number: Optional[str], outbound: bool = True
    ) -> str:
        return f"""{XML_HEADER}
<Response>
    <Say voice="{SAY_VOICE}">{escape_xml(text)}</Say>
    {self._stream(from_number, to_number, outbound)}
</Response>"""

    @staticmethod
    def dial(target_number: str, timeout: int = 30, byoc_trunk_sid: Optional[str] = None) -> str:
        """Redirect the call to target_number."""
        byoc_attr = f' byoc="{escape_xml(byoc_trunk_sid)}"' if byoc_trunk_sid else ""
        return f"""{XML_HEADER}
<Response>
    <Dial timeout="{timeout}">
        <Number{byoc_attr}>{escape_xml(target_number)}</Number>
    </Dial>
</Response>"""

    @staticmethod
    def hangup(message: Optional[str] = None) -> str:
        """Hang up, optionally saying something first."""
        say = f'\n    <Say voice="{SAY_VOICE}">{escape_xml(message)}</Say>' if message else ""
        return f"""{XML_HEADER}
<Response>{say}
    <Hangup/>
</Response>"""

    @staticmethod
    def empty() -> str:
        return f"""{XML_HEADER}
<Response></Response>"""
