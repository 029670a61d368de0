"""
MJML Email Templates
Transactional emails for bookings and credits, in Portuguese
"""

from html import escape
from typing import Optional

from .config import FRONTEND_URL

THEME = {
    "primary": "#2f6f5e",
    "primary_light": "#e3f1ec",
    "background": "#f6f7f5",
    "text_primary": "#1b1f1d",
    "text_secondary": "#3d4642",
    "text_muted": "#6b7570",
    "border": "#e1e5e2",
    "warning": "#b7791f",
    "danger": "#c53030",
}

BRAND_NAME = "Espaço Consultórios"


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML wrapper shared by every email"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="12px 0 24px 0" background-color="#ffffff">
          <mj-column>
            <mj-button href="{cta_url}" background-color="{THEME['primary']}" color="#ffffff"
              font-weight="600" border-radius="8px" padding="16px 36px" font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="28px 40px 8px 40px">
          <mj-column>
            <mj-text font-size="20px" font-weight="700" color="{THEME['primary']}" padding="0">
              {BRAND_NAME}
            </mj-text>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="20px 0 0 0" />
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="16px 40px 32px 40px">
          <mj-column>
            <mj-text font-size="22px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="24px 20px">
          <mj-column>
            <mj-text align="center" font-size="12px" color="{THEME['text_muted']}" padding="0">
              Este é um email automático, não responda.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _details_table(rows: list[tuple[str, str]]) -> str:
    cells = "".join(
        f"""
        <tr>
          <td style="padding: 6px 0; color: {THEME['text_muted']};">{label}</td>
          <td style="padding: 6px 0; text-align: right; font-weight: 600;">{value}</td>
        </tr>"""
        for label, value in rows
    )
    return f"""
    <mj-table padding="8px 0 16px 0" font-size="15px" color="{THEME['text_primary']}">
      {cells}
    </mj-table>
    """


def booking_confirmed_template(
    user_name: str,
    room_name: str,
    date_label: str,
    time_label: str,
    amount_label: str,
    credits_label: Optional[str] = None,
) -> str:
    rows = [("Sala", escape(room_name)), ("Data", date_label), ("Horário", time_label), ("Valor", amount_label)]
    if credits_label:
        rows.append(("Pago com créditos", credits_label))

    content = f"""
    <mj-text>Olá, {escape(user_name)}!</mj-text>
    <mj-text>Sua reserva está confirmada. Confira os detalhes:</mj-text>
    {_details_table(rows)}
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Cancelamentos pelo site são aceitos com até 48 horas de antecedência.
    </mj-text>
    """
    return get_base_template(
        title="Reserva confirmada",
        preview_text=f"{room_name} em {date_label}, {time_label}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/minha-conta/reservas",
        cta_label="Ver minhas reservas",
    )


def pix_pending_template(
    user_name: str, room_name: str, date_label: str, time_label: str, amount_label: str, payment_url: str
) -> str:
    content = f"""
    <mj-text>Olá, {escape(user_name)}!</mj-text>
    <mj-text>Recebemos sua reserva. Ela será confirmada assim que o pagamento for aprovado.</mj-text>
    {_details_table([("Sala", escape(room_name)), ("Data", date_label), ("Horário", time_label), ("Valor", amount_label)])}
    <mj-text font-size="14px" color="{THEME['warning']}">
      Reservas não pagas são canceladas automaticamente.
    </mj-text>
    """
    return get_base_template(
        title="Pagamento pendente",
        preview_text=f"Finalize o pagamento da sua reserva de {date_label}",
        content_sections=content,
        cta_url=payment_url,
        cta_label="Pagar agora",
    )


def booking_cancelled_template(
    user_name: str,
    room_name: str,
    date_label: str,
    time_label: str,
    refund_label: Optional[str] = None,
    credits_label: Optional[str] = None,
) -> str:
    notes = ""
    if refund_label:
        notes += f"""
        <mj-text>Seu pedido de reembolso de <strong>{refund_label}</strong> foi registrado e
        será processado pela nossa equipe.</mj-text>"""
    if credits_label:
        notes += f"""
        <mj-text><strong>{credits_label}</strong> em créditos voltaram para o seu saldo.</mj-text>"""

    content = f"""
    <mj-text>Olá, {escape(user_name)}.</mj-text>
    <mj-text>A reserva abaixo foi cancelada:</mj-text>
    {_details_table([("Sala", escape(room_name)), ("Data", date_label), ("Horário", time_label)])}
    {notes}
    """
    return get_base_template(
        title="Reserva cancelada",
        preview_text=f"Reserva de {date_label} cancelada",
        content_sections=content,
    )


def refund_requested_admin_template(
    user_name: str,
    user_email: str,
    booking_id: int,
    amount_label: str,
    pix_key_type: Optional[str],
    pix_key: Optional[str],
) -> str:
    rows = [
        ("Cliente", escape(user_name)),
        ("Email", escape(user_email or "-")),
        ("Reserva", f"#{booking_id}"),
        ("Valor", amount_label),
        ("Tipo de chave PIX", pix_key_type or "-"),
        ("Chave PIX", escape(pix_key or "-")),
    ]
    content = f"""
    <mj-text>Um cliente cancelou uma reserva paga e solicitou reembolso.</mj-text>
    {_details_table(rows)}
    """
    return get_base_template(
        title="Novo pedido de reembolso",
        preview_text=f"Reembolso de {amount_label} para a reserva #{booking_id}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/admin/reembolsos",
        cta_label="Abrir painel",
    )


def credit_confirmed_template(
    user_name: str, product_name: str, room_name: str, amount_label: str, expires_label: Optional[str]
) -> str:
    rows = [("Produto", escape(product_name)), ("Sala", escape(room_name)), ("Crédito", amount_label)]
    if expires_label:
        rows.append(("Validade", expires_label))

    content = f"""
    <mj-text>Olá, {escape(user_name)}!</mj-text>
    <mj-text>Seu pagamento foi aprovado e os créditos já estão disponíveis para reservas.</mj-text>
    {_details_table(rows)}
    """
    return get_base_template(
        title="Créditos liberados",
        preview_text=f"{amount_label} em créditos disponíveis",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/reservar",
        cta_label="Reservar agora",
    )
