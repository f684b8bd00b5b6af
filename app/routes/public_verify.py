from html import escape

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.controllers.certificates_controller import (
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    certificate_status,
    find_by_number,
)

router = APIRouter(prefix="/certificates", tags=["Public - Verify"])


def _fmt(dt):
    return dt.strftime("%d %b %Y") if dt else "-"


def _v(value) -> str:
    return escape(str(value)) if value not in (None, "") else "-"


def _page(title: str, status: str, subtitle: str, rows_html: str) -> str:
    if status == "VALID":
        color, icon = "#22c55e", "&#10003;"
    elif status == "EXPIRED":
        color, icon = "#f59e0b", "!"
    else:
        color, icon = "#ef4444", "&#10005;"

    company = escape(settings.COMPANY_NAME)

    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width,initial-scale=1"/>
  <title>{title}</title>
  <style>
    body{{margin:0;font-family:system-ui,-apple-system,Segoe UI,Roboto,Arial;background:#0b1220;color:#fff;}}
    .wrap{{max-width:880px;margin:0 auto;padding:22px 14px;}}
    .card{{background:rgba(255,255,255,.06);border:1px solid rgba(255,255,255,.12);border-radius:18px;overflow:hidden;}}
    .top{{padding:18px;border-bottom:1px solid rgba(255,255,255,.12);display:flex;gap:14px;align-items:flex-start;}}
    .icon{{width:46px;height:46px;border-radius:14px;display:grid;place-items:center;
          border:1px solid rgba(255,255,255,.12);background:rgba(255,255,255,.05);font-size:22px;color:{color};}}
    h1{{margin:0;font-size:18px;}}
    .sub{{margin-top:6px;color:rgba(255,255,255,.72);font-size:13px;line-height:1.4;}}
    .grid{{display:grid;grid-template-columns:1fr 1fr;gap:12px;padding:16px 18px 18px;}}
    @media(max-width:720px){{.grid{{grid-template-columns:1fr;}}}}
    .box{{border:1px solid rgba(255,255,255,.12);border-radius:16px;background:rgba(255,255,255,.04);padding:12px;}}
    .box h3{{margin:0 0 10px;font-size:12px;color:rgba(255,255,255,.70);text-transform:uppercase;}}
    .row{{display:flex;justify-content:space-between;gap:10px;padding:9px 0;border-top:1px dashed rgba(255,255,255,.12);}}
    .row:first-of-type{{border-top:none;}}
    .k{{color:rgba(255,255,255,.70);font-size:13px;}}
    .v{{font-size:13px;text-align:right;word-break:break-word;}}
    code{{padding:2px 6px;border-radius:8px;background:rgba(255,255,255,.06);}}
  </style>
</head>
<body>
  <div class="wrap">
    <div style="margin-bottom:12px;font-size:14px;font-weight:600;">{company} &middot; Certificate Verification</div>
    <div class="card">
      <div class="top">
        <div class="icon">{icon}</div>
        <div>
          <h1 style="color:{color};">{status}</h1>
          <div class="sub">{subtitle}</div>
        </div>
      </div>
      <div class="grid">
        {rows_html}
      </div>
    </div>
  </div>
</body>
</html>"""


async def _render(number: str, db: AsyncSession) -> HTMLResponse:
    cert = await find_by_number(db, number)

    if not cert:
        rows = f"""
        <div class="box">
          <h3>Lookup</h3>
          <div class="row"><div class="k">Certificate No</div><div class="v"><code>{_v(number)}</code></div></div>
          <div class="row"><div class="k">Result</div><div class="v">Not found</div></div>
        </div>
        """
        return HTMLResponse(
            _page("Certificate Verify", "NOT FOUND", "No certificate with this number exists.", rows),
            status_code=404,
        )

    state = certificate_status(cert)
    if state == STATUS_ACTIVE:
        label, subtitle = "VALID", "This certificate is authentic and currently valid."
    elif state == STATUS_EXPIRED:
        label, subtitle = "EXPIRED", "This certificate is authentic but has expired."
    else:
        label, subtitle = "REVOKED", "This certificate has been revoked by the issuer."

    revoked_row = ""
    if cert.revoked_at is not None:
        revoked_row = (
            f'<div class="row"><div class="k">Revoked</div><div class="v">{_fmt(cert.revoked_at)}</div></div>'
            f'<div class="row"><div class="k">Reason</div><div class="v">{_v(cert.revoke_reason)}</div></div>'
        )

    rows = f"""
    <div class="box">
      <h3>Certificate</h3>
      <div class="row"><div class="k">Certificate No</div><div class="v"><code>{_v(cert.number)}</code></div></div>
      <div class="row"><div class="k">Issued</div><div class="v">{_fmt(cert.issued_at)}</div></div>
      <div class="row"><div class="k">Expires</div><div class="v">{_fmt(cert.expiry_at) if cert.expiry_at else "Never"}</div></div>
      {revoked_row}
    </div>
    <div class="box">
      <h3>Holder</h3>
      <div class="row"><div class="k">Name</div><div class="v">{_v(getattr(cert.user, "name", None))}</div></div>
      <div class="row"><div class="k">Course</div><div class="v">{_v(getattr(cert.course, "title", None))}</div></div>
    </div>
    """
    return HTMLResponse(_page("Certificate Verify", label, subtitle, rows), status_code=200)


@router.get("/verify/{number}", response_class=HTMLResponse)
async def verify_certificate_page(number: str, db: AsyncSession = Depends(get_db)):
    return await _render(number, db)


@router.get("/{number}", response_class=HTMLResponse)
async def certificate_page(number: str, db: AsyncSession = Depends(get_db)):
    return await _render(number, db)
