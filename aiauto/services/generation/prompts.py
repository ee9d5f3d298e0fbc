# prompts.py

EMAIL_LENGTH_GUIDE = {
    "short": "100-150 words",
    "medium": "150-250 words",
    "long": "250-400 words",
}

PRODUCT_LENGTH_GUIDE = {
    "short": "50-100 words",
    "medium": "100-200 words",
    "long": "200-300 words",
    "detailed": "300-400 words",
}

STYLE_GUIDE = """STYLE GUIDE (STRICT):
- Write like you talk. 5th-grade reading level.
- Short, punchy sentences.
- High contrast. High value. Zero fluff.
- "Hook-Retain-Reward" structure.
- Use "I" and "You". Be direct.
- No corporate jargon."""

EMAIL_SYSTEM_PROMPT = f"""You are a direct-response copywriter. Write a 3-5 email campaign sequence.

{STYLE_GUIDE}
- Format for readability: one sentence per line often.

OUTPUT SCHEMA (JSON ONLY):
{{
  "campaign": [
    {{
      "day": 1,
      "subjectLine": "Punchy Subject",
      "preheader": "Hook text",
      "body": "Body content...",
      "callToAction": "Direct CTA"
    }}
  ],
  "strategy": "Brief explanation of the campaign strategy"
}}
"""

PRODUCT_SYSTEM_PROMPT_TEMPLATE = """You are a direct-response copywriter writing product descriptions.

{style_guide}
- High contrast: "Old way" vs "New way".
- Focus on the dream outcome.
- Use bullet points to stack value.

CRITICAL: You MUST respond with ONLY valid JSON matching this exact schema:

{{
  "headline": "Benefit-driven headline (max 100 chars)",
  "tagline": "High-contrast tagline (max 50 chars)",
  "shortDescription": "1-2 sentence hook.",
  "fullDescription": "Stack the value here. ({length_words})",
  "keyFeatures": [
    {{ "title": "Feature Name", "description": "What it does for them" }}
  ],
  "benefits": ["Benefit 1", "Benefit 2", "Benefit 3"],
  "targetAudience": "Who this is SPECIFICALLY for",
  "callToAction": "Direct command",
  "seoKeywords": ["keyword1", "keyword2", "keyword3", "keyword4", "keyword5"]
}}

Rules:
- Tone: {tone}
- Sell the OUTCOME, not the tool.
- Make the cost of inaction clear."""


def _or(value, default: str) -> str:
    v = (value or "").strip() if isinstance(value, str) else value
    return v or default


def build_email_messages(params: dict) -> list[dict]:
    length = EMAIL_LENGTH_GUIDE.get(params.get("length") or "", "100-150 words")
    image_url = (params.get("imageUrl") or "").strip()

    lines = [
        f"Generate a {length} email sequence (3-5 emails) for:",
        f"Subject/Topic: {params.get('subject')}",
        f"Purpose: {_or(params.get('purpose'), 'promotional')}",
        f"Target Audience: {_or(params.get('audience'), 'General')}",
        f"Tone: {_or(params.get('tone'), 'Direct')}",
        f"Key Value Points: {_or(params.get('keyPoints'), 'Not specified')}",
        f"Main CTA: {_or(params.get('cta'), 'Action')}",
    ]
    if image_url:
        lines.append("Product image provided - use visual details as proof/evidence.")

    return _messages(EMAIL_SYSTEM_PROMPT, "\n".join(lines), image_url)


def build_product_messages(params: dict) -> list[dict]:
    length_key = params.get("length") or "medium"
    length = PRODUCT_LENGTH_GUIDE.get(length_key, "100-200 words")
    tone = _or(params.get("tone"), "Direct and High Value")
    image_url = (params.get("imageUrl") or "").strip()

    system = PRODUCT_SYSTEM_PROMPT_TEMPLATE.format(style_guide=STYLE_GUIDE, length_words=length, tone=tone)
    lines = [
        "Generate a product description for:",
        "",
        f"Product Name: {params.get('productName')}",
        f"Category: {_or(params.get('category'), 'General')}",
        f"Key Features: {_or(params.get('features'), 'Not specified')}",
        f"Target Audience: {_or(params.get('targetAudience'), 'General consumers')}",
        f"Tone: {_or(params.get('tone'), 'Direct')}",
        f"Length: {length_key} ({length})",
    ]
    if image_url:
        lines += ["", "Product image provided. Use visual proof to back up your claims."]
    lines += ["", "Return ONLY the JSON object."]

    return _messages(system, "\n".join(lines), image_url)


def _messages(system: str, user: str, image_url: str = "") -> list[dict]:
    messages = [{"role": "system", "content": system}]
    if image_url:
        messages.append({
            "role": "user",
            "content": [
                {"type": "text", "text": user},
                {"type": "image_url", "image_url": {"url": image_url}},
            ],
        })
    else:
        messages.append({"role": "user", "content": user})
    return messages
