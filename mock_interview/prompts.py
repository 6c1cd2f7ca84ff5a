# ----------- Question Prompt -----------

QUESTION_PROMPT = """
You are an expert interviewer. Generate a single, clear interview question for a {job_title} position.

Job Description: {job_description}
Difficulty Level: {difficulty}

Generate a question that:
1. Is relevant to the job role
2. Matches the difficulty level ({difficulty})
3. Is clear and concise
4. Allows the candidate to demonstrate their skills

Return only the question, no additional text.
"""

# ----------- Follow-up Prompt -----------

FOLLOW_UP_PROMPT = """
Based on the following interview exchange, generate a relevant follow-up question.

Previous Question: {previous_question}
Candidate's Answer: {answer}
Job Title: {job_title}

Generate a follow-up question that:
1. Builds on the candidate's answer
2. Goes deeper into the topic
3. Is relevant to the role

Return only the question, no additional text.
"""

# ----------- Feedback Prompt -----------

FEEDBACK_PROMPT = """
You are an expert interview evaluator. Analyze the following interview and provide comprehensive feedback.

Job Title: {job_title}
Job Description: {job_description}
Difficulty Level: {difficulty}

Questions Asked:
{questions}

Interview Transcript:
{transcript}

Provide feedback in the following JSON format:
{{
  "overallScore": <number 0-100>,
  "strengths": [<array of strengths>],
  "weaknesses": [<array of areas for improvement>],
  "recommendations": [<array of recommendations>],
  "detailedAnalysis": "<detailed text analysis>"
}}

Return only valid JSON, no additional text.
"""

QUESTION_SYSTEM_PROMPT = "You are a professional interviewer. Reply with exactly one interview question."
FEEDBACK_SYSTEM_PROMPT = "You are a strict JSON generator. Output JSON only."
