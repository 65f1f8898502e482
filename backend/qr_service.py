import base64
import io
import secrets

import qrcode


def generate_qr_token(ticket_id: str, prefix: str) -> str:
    # The ticket id keeps tokens structurally unique; the random suffix makes them unguessable
    return f"{prefix}-{ticket_id}-{secrets.token_hex(8)}"


def render_qr_png(data: str) -> bytes:
    qr_img = qrcode.make(data)
    output = io.BytesIO()
    qr_img.save(output)
    return output.getvalue()


def qr_data_url(data: str) -> str:
    encoded = base64.b64encode(render_qr_png(data)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
