# proof_engine/generator/templates.py
"""Dockerfile and CI workflow templates, one pair per supported language."""


NODE_DOCKERFILE = """\
FROM {{base_image}}

WORKDIR /app

COPY {{manifest_files}} ./
RUN {{install_command}}

COPY . .

ENV NODE_ENV=production
ENV PORT={{port}}
EXPOSE {{port}}

CMD {{cmd}}
"""


PYTHON_DOCKERFILE = """\
FROM {{base_image}}

ENV PYTHONDONTWRITEBYTECODE=1 \\
    PYTHONUNBUFFERED=1

WORKDIR /app

COPY . .
RUN {{install_command}}

ENV PORT={{port}}
EXPOSE {{port}}

CMD {{cmd}}
"""


UNKNOWN_DOCKERFILE = """\
# Project type could not be detected; this image only keeps the port open.
FROM {{base_image}}

WORKDIR /app

COPY . .

EXPOSE {{port}}

CMD {{cmd}}
"""


CI_PIPELINE = """\
name: Deploy

on:
  push:
    branches: [main]
  workflow_dispatch:

jobs:
  build-and-test:
    runs-on: ubuntu-latest
    steps:
      - name: Checkout
        uses: actions/checkout@v4
{{setup_steps}}
      - name: Build Docker image
        run: docker build -t {{image_name}}:${{ github.sha }} .

      - name: Run container
        run: docker run -d --name {{image_name}} -p {{port}}:{{port}} {{image_name}}:${{ github.sha }}

      - name: Smoke test
        run: |
          sleep 5
          curl --fail --retry 5 --retry-delay 2 http://localhost:{{port}}/

      - name: Stop container
        if: always()
        run: docker rm -f {{image_name}}
"""


NODE_SETUP_STEPS = """\
      - name: Set up Node.js
        uses: actions/setup-node@v4
        with:
          node-version: "{{node_version}}"

      - name: Install dependencies
        run: {{install_command}}
"""


PYTHON_SETUP_STEPS = """\
      - name: Set up Python
        uses: actions/setup-python@v5
        with:
          python-version: "{{python_version}}"

      - name: Install dependencies
        run: {{install_command}}
"""
