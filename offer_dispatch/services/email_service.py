"""
邮件发送服务 - SMTP

四类事务邮件：发放优惠码、一年内已领取、邮箱不符合资格、技术问题。
"""
import html
import smtplib
import logging
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from offer_dispatch.config import get_settings
from offer_dispatch.utils.timezone import format_cn_date


settings = get_settings()
logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, html_content: str) -> bool:
    """
    发送邮件 (同步方法，在异步上下文中请用 asyncio.to_thread 调用)
    """
    if not settings.smtp_user or not settings.smtp_password:
        logger.warning("Email service not configured, skipping send")
        return False

    try:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{settings.app_name} <{settings.email_sender_address}>"
        msg['To'] = to_email

        if settings.email_reply_to:
            msg['Reply-To'] = settings.email_reply_to

        msg.attach(MIMEText(html_content, 'html', 'utf-8'))

        smtp_host = settings.smtp_host
        smtp_port = settings.smtp_port

        if smtp_port == 465:
            server = smtplib.SMTP_SSL(smtp_host, smtp_port, timeout=20)
        else:
            server = smtplib.SMTP(smtp_host, smtp_port, timeout=20)
            server.ehlo()
            server.starttls()
            server.ehlo()

        with server:
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.email_sender_address, [to_email], msg.as_string())

        logger.info("Email sent successfully to %s", mask_email(to_email))
        return True
    except (smtplib.SMTPException, OSError) as e:
        # 不记录完整的异常信息，避免泄露敏感配置（如密码）
        logger.error("Failed to send email to %s: %s", mask_email(to_email), type(e).__name__)
        return False


def mask_email(email: str) -> str:
    """脱敏邮箱地址用于日志记录，同时去掉控制字符防止日志注入"""
    if not email:
        return "(empty)"
    cleaned = ''.join(char for char in email if char.isprintable())[:100]
    local, sep, domain = cleaned.partition("@")
    if not sep:
        return cleaned[:2] + "***"
    return f"{local[:2]}***@{domain}"


# ============================================================================
# 通用邮件组件（内联样式，兼容各种邮件客户端）
# ============================================================================

def _email_wrapper(content: str) -> str:
    """邮件外层包装，提供兼容性更好的结构"""
    return f"""
<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN" "http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:v="urn:schemas-microsoft-com:vml" xmlns:o="urn:schemas-microsoft-com:office:office">
<head>
    <meta http-equiv="Content-Type" content="text/html; charset=UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0"/>
    <meta name="x-apple-disable-message-reformatting" />
    <!--[if !mso]><!-->
    <style type="text/css">
        @import url('https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600;700&display=swap');
        table {{ border-collapse: collapse; table-layout: fixed; }}
        .gmail-hide {{ display: none; }}
    </style>
    <!--<![endif]-->
    <!--[if mso]>
    <noscript>
        <xml>
            <o:OfficeDocumentSettings>
                <o:PixelsPerInch>96</o:PixelsPerInch>
            </o:OfficeDocumentSettings>
        </xml>
    </noscript>
    <![endif]-->
    <style type="text/css">
        body {{ margin: 0 !important; padding: 0 !important; width: 100% !important; -webkit-text-size-adjust: 100%; -ms-text-size-adjust: 100%; }}
        .external {{ display: block; width: 100%; }}
        .button {{ -webkit-text-size-adjust: none; mso-hide: all; }}
    </style>
</head>
<body style="margin: 0; padding: 0; width: 100% !important; -webkit-text-size-adjust: 100%; -ms-text-size-adjust: 100%; background-color: #f5f5f5;">
    <!--[if mso]>
    <style type="text/css">
        body, table, td {{font-family: Arial, sans-serif !important;}}
    </style>
    <![endif]-->
    {content}
</body>
</html>
"""


def _container(content: str, width: int = 500) -> str:
    """邮件容器"""
    return f"""
<table width="100%" cellpadding="0" cellspacing="0" role="presentation" style="background-color: #f5f5f5; padding: 20px;">
    <tr>
        <td align="center" style="padding: 20px 10px;">
            <table width="{width}" cellpadding="0" cellspacing="0" role="presentation" style="margin: 0 auto; background-color: #ffffff; border-radius: 16px; overflow: hidden; box-shadow: 0 4px 12px rgba(0,0,0,0.08);">
                <!--[if mso]>
                <table width="{width}" cellpadding="0" cellspacing="0" role="presentation" style="margin: 0 auto; background-color: #ffffff;">
                <tr><td style="padding: 0;">
                <![endif]-->
                {content}
                <!--[if mso]>
                </td></tr>
                </table>
                <![endif]-->
            </table>
        </td>
    </tr>
</table>
"""


def _header(icon: str, title: str, subtitle: str, bg_color: str = "#2563eb") -> str:
    """邮件头部"""
    return f"""
<table width="100%" cellpadding="0" cellspacing="0" role="presentation" style="background-color: {bg_color};">
    <tr>
        <td align="center" style="padding: 36px 24px 32px;">
            <div style="font-size: 44px; line-height: 44px; margin-bottom: 12px;">{icon}</div>
            <h1 style="margin: 0; padding: 0; font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; font-size: 24px; line-height: 32px; font-weight: 700; color: #ffffff; margin-bottom: 6px;">{title}</h1>
            <p style="margin: 0; padding: 0; font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; font-size: 14px; line-height: 20px; color: rgba(255,255,255,0.9);">{subtitle}</p>
        </td>
    </tr>
</table>
"""


def _content(content: str) -> str:
    """内容区域"""
    return f"""
<table width="100%" cellpadding="0" cellspacing="0" role="presentation" style="background-color: #ffffff;">
    <tr>
        <td style="padding: 32px 24px;">
            {content}
        </td>
    </tr>
</table>
"""


def _paragraph(text: str, strong: bool = False) -> str:
    weight = "600" if strong else "400"
    color = "#1f2937" if strong else "#4b5563"
    return (
        f"<p style=\"margin: 0 0 14px 0; padding: 0; font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; "
        f"font-size: 14px; line-height: 22px; font-weight: {weight}; color: {color};\">{text}</p>"
    )


def _code_box(code: str, label: str) -> str:
    """优惠码展示框"""
    return f"""
<table width="100%" cellpadding="0" cellspacing="0" role="presentation" style="margin: 24px 0;">
    <tr>
        <td align="center" style="background-color: #eff6ff; border: 2px dashed #2563eb; border-radius: 12px; padding: 24px;">
            <p style="margin: 0; padding: 0; font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; font-size: 12px; line-height: 16px; color: #1d4ed8; font-weight: 600; letter-spacing: 1px; margin-bottom: 16px;">{label}</p>
            <p style="margin: 0; padding: 0; font-family: 'Courier New', Courier, monospace; font-size: 28px; line-height: 36px; font-weight: 700; color: #1f2937; letter-spacing: 4px;">{code}</p>
        </td>
    </tr>
</table>
"""


def _alert_box(title: str, text: str) -> str:
    """提示框"""
    return f"""
<table width="100%" cellpadding="0" cellspacing="0" role="presentation" style="margin: 24px 0;">
    <tr>
        <td style="background-color: #fef3c7; border-left: 4px solid #f59e0b; border-radius: 0 8px 8px 0; padding: 16px 20px;">
            <p style="margin: 0; padding: 0; font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; font-size: 14px; line-height: 20px; font-weight: 600; color: #92400e; margin-bottom: 6px;">{title}</p>
            <p style="margin: 0; padding: 0; font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; font-size: 13px; line-height: 18px; color: #78350f;">{text}</p>
        </td>
    </tr>
</table>
"""


def _contact_line() -> str:
    contact = html.escape(settings.contact_email)
    return _paragraph(f"<strong><a href=\"mailto:{contact}\" style=\"color: #2563eb;\">{contact}</a></strong>")


def _footer() -> str:
    """页脚"""
    contact = html.escape(settings.contact_email)
    return f"""
<table width="100%" cellpadding="0" cellspacing="0" role="presentation" style="margin: 24px 0 0 0; border-top: 1px solid #e5e7eb;">
    <tr>
        <td align="center" style="padding: 16px 0 0 0;">
            <p style="margin: 0; padding: 0; font-family: 'Helvetica Neue', Helvetica, Arial, sans-serif; font-size: 12px; line-height: 18px; color: #9ca3af;">请不要回复此邮件，因为这是自动发出的。如果你有任何问题，可以通过电子邮件联系我们：<a href="mailto:{contact}" style="color: #9ca3af;">{contact}</a></p>
        </td>
    </tr>
</table>
"""


def _signature() -> str:
    return _paragraph(f"最诚挚的问候，<br/>{html.escape(settings.app_name)} 支持")


def _render(icon: str, title: str, subtitle: str, body: str, bg_color: str = "#2563eb") -> str:
    content = _header(icon, title, subtitle, bg_color)
    content += _content(body + _footer())
    return _email_wrapper(_container(content))


# ============================================================================
# 邮件模板
# ============================================================================

def build_offer_code_email(code: str, expires_at: datetime) -> tuple[str, str]:
    """发放优惠码邮件"""
    service = html.escape(settings.service_name)
    subject = f"你的 {settings.service_name} 教育优惠"
    body = (
        _paragraph("亲爱的用户，", strong=True)
        + _paragraph(f"感谢你获取 {service} 教育优惠，以下是你的教育优惠代码：")
        + _code_box(html.escape(code), "教育优惠代码")
        + _paragraph(f"有效截止日期为{format_cn_date(expires_at)}。请在截止日期之前兑换。")
        + _paragraph("你可以按照以下路径进行兑换：")
        + _paragraph(html.escape(settings.redeem_path), strong=True)
        + _paragraph("祝你生活愉快！")
        + _signature()
    )
    return subject, _render("🎓", f"{service} 教育优惠", "你的优惠代码已准备好", body)


def build_already_redeemed_email(last_claimed_at: datetime) -> tuple[str, str]:
    """一年内已领取过的提示邮件"""
    service = html.escape(settings.service_name)
    subject = f"你曾在 1 年内申请过 {settings.service_name} 教育优惠"
    body = (
        _paragraph("亲爱的用户，", strong=True)
        + _paragraph(f"感谢你对 {service} 教育优惠的关注。")
        + _paragraph("很抱歉，我们注意到你在过去的一年内已经获取过教育优惠。因此，你暂时不能重新获取优惠代码。")
        + _alert_box(
            f"上次获取时间：{format_cn_date(last_claimed_at)}",
            "请在距离上次获得教育优惠 1 年后再尝试获取。",
        )
        + _paragraph(f"在此期间，你仍然可以享受 {service} 的众多精彩功能。")
        + _paragraph("如果你认为我们的判断有误，即你未在过去的 1 年内获取过教育优惠，请通过以下电子邮件地址联系我们，我们会尽快对此进行核查并提供相应的帮助：")
        + _contact_line()
        + _signature()
    )
    return subject, _render("📅", "你已领取过教育优惠", "每个邮箱每年可领取一次", body, "#f59e0b")


def build_not_eligible_email(email_address: str) -> tuple[str, str]:
    """邮箱不符合教育优惠要求的邮件"""
    service = html.escape(settings.service_name)
    subject = f"有关你的 {settings.service_name} 教育优惠资格"
    body = (
        _paragraph("亲爱的用户，", strong=True)
        + _paragraph(f"感谢你尝试获取 {service} 教育优惠。")
        + _paragraph(f"很抱歉，我们发现你的电子邮件地址 {html.escape(email_address)} 不符合我们的教育优惠要求。")
        + _paragraph("教育优惠只适用于有效的教育机构的邮箱。如果你认为我们的判断有误，即你的邮箱确实是教育邮箱，请通过以下电子邮件地址联系我们，我们会尽快对此进行核查并提供相应的帮助：")
        + _contact_line()
        + _paragraph(f"感谢你对 {html.escape(settings.app_name)} 的支持。")
        + _signature()
    )
    return subject, _render("✉️", "邮箱不符合资格", "教育优惠仅适用于教育机构邮箱", body, "#6b7280")


def build_technical_issue_email() -> tuple[str, str]:
    """技术问题导致无法发放的邮件"""
    service = html.escape(settings.service_name)
    app_name = html.escape(settings.app_name)
    subject = f"有关你的 {settings.service_name} 教育优惠申请（技术问题）"
    body = (
        _paragraph("亲爱的用户，", strong=True)
        + _paragraph(f"感谢你对 {service} 教育优惠的关注。")
        + _paragraph(f"很抱歉，由于我们的优惠码生成过程出现了技术问题，我们暂时无法为你提供优惠代码。{app_name} 的开发者已经被通知此问题并且正在处理。")
        + _paragraph(f"请放心，你应该会很快收到我们手动发送的优惠代码。如果在稍后的时间还没有收到，请再尝试一次或者通过以下地址联系 {app_name} 支持：")
        + _contact_line()
        + _paragraph("对给你带来的不便，我们感到非常抱歉。")
        + _signature()
    )
    return subject, _render("🛠️", "暂时无法发放优惠代码", "开发者已收到通知", body, "#ef4444")


def send_offer_code_email(to_email: str, code: str, expires_at: datetime) -> bool:
    subject, html_content = build_offer_code_email(code, expires_at)
    return send_email(to_email, subject, html_content)


def send_already_redeemed_email(to_email: str, last_claimed_at: datetime) -> bool:
    subject, html_content = build_already_redeemed_email(last_claimed_at)
    return send_email(to_email, subject, html_content)


def send_not_eligible_email(to_email: str) -> bool:
    subject, html_content = build_not_eligible_email(to_email)
    return send_email(to_email, subject, html_content)


def send_technical_issue_email(to_email: str) -> bool:
    subject, html_content = build_technical_issue_email()
    return send_email(to_email, subject, html_content)
