# proof_engine/certificates/render.py
"""Human-readable certificate page (presentation only)."""

from jinja2 import Environment, select_autoescape

from proof_engine.core.models import CertificateRecord

_environment = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

CERTIFICATE_TEMPLATE = _environment.from_string("""\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Deployment Certificate - {{ snapshot.certificate_id }}</title>
  <style>
    body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background: #f4f5fb; padding: 20px; }
    .certificate { background: white; border-radius: 16px; max-width: 800px; margin: 0 auto; padding: 48px 40px; border-top: 10px solid #667eea; }
    .header { text-align: center; border-bottom: 3px solid #667eea; padding-bottom: 20px; margin-bottom: 30px; }
    .badge { display: inline-block; padding: 5px 15px; border-radius: 20px; color: white; font-weight: bold; }
    .badge.pass { background: #28a745; }
    .badge.fail { background: #e74c3c; }
    .field { margin: 16px 0; padding: 12px; background: #f8f9fa; border-left: 4px solid #667eea; }
    .field-label { font-weight: bold; color: #667eea; font-size: 13px; text-transform: uppercase; }
    .metrics { display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr)); gap: 12px; margin: 24px 0; }
    .metric { background: #667eea; color: white; padding: 16px; border-radius: 10px; text-align: center; }
    .metric-value { font-size: 22px; font-weight: bold; }
    .signature { margin-top: 32px; padding: 16px; border: 2px dashed #667eea; font-family: 'Courier New', monospace; font-size: 12px; word-break: break-all; }
    .footer { text-align: center; margin-top: 32px; color: #999; font-size: 14px; }
  </style>
</head>
<body>
  <div class="certificate">
    <div class="header">
      <h1>Deployment Proof Certificate</h1>
      {% if metrics.health_check.success %}
      <span class="badge pass">&#10003; VERIFIED</span>
      {% else %}
      <span class="badge fail">&#10007; HEALTH CHECK FAILED</span>
      {% endif %}
    </div>

    <div class="field"><div class="field-label">Certificate ID</div>{{ snapshot.certificate_id }}</div>
    <div class="field"><div class="field-label">Developer</div>{{ snapshot.user_name }}</div>
    <div class="field"><div class="field-label">Repository</div>{{ snapshot.repo_url }}</div>
    <div class="field"><div class="field-label">Platform</div>{{ snapshot.platform | upper }}</div>
    <div class="field"><div class="field-label">Technology Stack</div>{{ snapshot.detected_language or "N/A" }}{% if snapshot.detected_framework %} ({{ snapshot.detected_framework }}){% endif %}</div>
    <div class="field"><div class="field-label">Issued At</div>{{ issued_at }}</div>

    <div class="metrics">
      <div class="metric"><div>Health Check</div><div class="metric-value">{{ "PASS" if metrics.health_check.success else "FAIL" }}</div></div>
      <div class="metric"><div>Response Time</div><div class="metric-value">{{ "%.0f" | format(metrics.health_check.response_time) }}ms</div></div>
      <div class="metric"><div>Load Test Success</div><div class="metric-value">{{ metrics.load_test.successful_requests }}/{{ metrics.load_test.total_requests }}</div></div>
      <div class="metric"><div>Avg Latency</div><div class="metric-value">{{ "%.0f" | format(metrics.load_test.average_latency) }}ms</div></div>
    </div>

    <div class="signature">
      <strong>Digital Signature (HMAC-SHA256)</strong><br>
      {{ signature }}
    </div>

    <div class="footer">
      <p>This certificate attests that the deployment was built, run and tested.</p>
      <p>Deployment ID: {{ snapshot.deployment_id }}</p>
    </div>
  </div>
</body>
</html>
""")

NOT_FOUND_TEMPLATE = _environment.from_string("""\
<!DOCTYPE html>
<html>
<head><title>Certificate Not Found</title></head>
<body style="font-family: Arial, sans-serif; text-align: center; padding: 50px;">
  <h1 style="color: #e74c3c;">Certificate Not Found</h1>
  <p>No certificate with id {{ certificate_id }} exists.</p>
</body>
</html>
""")


def render_certificate_html(certificate: CertificateRecord) -> str:
    snapshot = certificate.snapshot
    return CERTIFICATE_TEMPLATE.render(
        snapshot=snapshot,
        metrics=snapshot.metrics,
        issued_at=snapshot.issued_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
        signature=certificate.signature,
    )


def render_not_found_html(certificate_id: str) -> str:
    return NOT_FOUND_TEMPLATE.render(certificate_id=certificate_id)
