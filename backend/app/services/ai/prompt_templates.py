"""
Prompt templates for customer-facing insight messages.
Centralized prompt engineering for consistency and easy iteration.
"""

# Email

INSIGHT_EMAIL_PROMPT = """You are writing a short, customer-facing email from an authorized vehicle service center, encouraging the customer to review their upcoming due service insights via a link in the email.

CUSTOMER: {customer_name}
INSIGHTS: {insights_json}

Objective:
Create a concise, engaging summary that highlights the most important service insights and motivates the customer to click the link to view full details.

Instructions:
1. Start with a warm, personalized greeting using the customer's name (e.g., "Dear [Name],").
2. Write a compelling body of fewer than 50 words that:
   - Summarizes key technical findings at a high level
   - Emphasizes the most urgent or valuable service recommendation
   - Creates curiosity and value, encouraging the customer to view the detailed insights via the link
3. Use professional automotive service terminology (e.g., "Recommended periodic maintenance", "Preventive inspection findings").
4. Do NOT mention the vehicle's specific age or make assumptions about usage.
5. End with a polite, professional sign-off (e.g., "Sincerely,<br>Your Service Team").
6. Tone: Warm, reassuring, professional, and customer-centric.
7. Output format:
   - Return a single HTML <p> element
   - Format as a complete email using <br> for line breaks (greeting <br> body <br> sign-off)
   - Do not include the actual link text or URL."""

# SMS / WhatsApp

INSIGHT_TEXT_PROMPT = """Write a short, professional {channel_label} message for a vehicle service reminder.

CUSTOMER: {customer_name}
VEHICLE: {vehicle_make} {vehicle_model}
INSIGHTS: {insights_json}
TRACKING URL: {tracking_url}

Instructions:
1. Start with "Hi {customer_name},".
2. State clearly that we have analyzed the service history.
3. Extract exactly 2 key maintenance points from the insights.
4. List them as simple bullet points (e.g. "- Brake Pads").
5. Do NOT use markdown emphasis characters such as * or _.
6. End with the tracking URL exactly as given above. Copy it verbatim and never shorten or truncate it.
7. Keep it very concise and return PLAIN TEXT only."""

TEXT_CHANNEL_LABELS = {
    "sms": "SMS",
    "whatsapp": "WhatsApp",
}
