"""Minimal return page the buyer lands on after paying at the gateway."""

import html
from urllib.parse import quote

STATUS_PAGE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>Payment status</title></head>
<body>
<h1>Payment status</h1>
<p>Order <code>{order_id}</code>: <span id="status">checking...</span></p>
<script>
const labels = {{1: "approved", 2: "rejected", 3: "pending", 4: "rejected"}};
fetch("/api/paymentStatus/{order_id_js}")
  .then((resp) => resp.json())
  .then((data) => {{
    const el = document.getElementById("status");
    el.textContent = data.success ? (labels[data.status] || String(data.status)) : data.message;
  }});
</script>
</body>
</html>
"""


def render_status_page(order_id: str) -> str:
    """Render the polling page for one order id."""

    return STATUS_PAGE.format(
        order_id=html.escape(order_id),
        order_id_js=quote(order_id, safe=""),
    )
