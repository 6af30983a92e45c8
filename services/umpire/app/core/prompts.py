"""
Prompt templates for the four umpire stages.

Each builder takes a SportProfile so the same pipeline serves every sport:
the profile supplies the sport name, the calls that may be made and the
visual elements to inspect. Stage 3 also embeds the full rule text.
"""

from typing import List

from app.core.decision import tokens_for
from app.core.sports_rules import SportProfile


def decision_choices(profile: SportProfile) -> List[str]:
    """Profile calls the final-call extractor can recognise, in its priority order."""
    return [token for token in tokens_for(profile.sport_id) if token in profile.decisions]


def _decision_choices(profile: SportProfile) -> str:
    return " or ".join(decision_choices(profile))


def frame_vision_prompt(profile: SportProfile, index: int, total: int) -> str:
    elements = "\n".join(f"{n}. {e}" for n, e in enumerate(profile.key_elements, 1))
    return f"""
You are a {profile.name.upper()} VISION EXPERT analyzing a single frame for detailed visual evidence.

FRAME ANALYSIS TASK:
Analyze this single frame from a {profile.name} video for specific visual details.

Focus on these elements:
{elements}

Visual Evidence Report:
- What do you see clearly in this frame?
- Any equipment interactions?
- Player positions and movements?
- Critical moments or contact points?

Frame {index} of {total} - Provide detailed visual evidence:
"""


def full_video_prompt(profile: SportProfile) -> str:
    return f"""
You are a PROFESSIONAL {profile.name.upper()} UMPIRE analyzing a complete video to make an OFFICIAL DECISION.

CRITICAL: ANALYZE THE ENTIRE VIDEO DURATION
- This video contains the complete action sequence - you must analyze ALL of it
- Watch from the very beginning (0 seconds) to the very end - not just the final moment
- Describe what happens at the START, MIDDLE, and END of the video
- Track the ball's complete journey to the final outcome
- Consider the full chronological sequence of events

STEP 1: Full Video Timeline Analysis
- BEGINNING (first 1-2 seconds): What happens at the start?
- MIDDLE (middle portion): What develops during the action?
- END (final 1-2 seconds): What is the final outcome?
- SCENARIO TYPE: What type of {profile.name} scenario is this?

STEP 2: Complete Visual Evidence
- Ball trajectory and path throughout the video
- All contact points in sequence
- Player actions and movements throughout
- Key elements: {", ".join(profile.key_elements)}

STEP 3: Full Context Rules
- Apply the rules of {profile.name} to the COMPLETE sequence you observed
- Which rules are relevant to the FULL scenario?

STEP 4: Official Decision Based on Complete Analysis
- DECISION: {_decision_choices(profile)}
- TYPE: If a dismissal or infringement, specify its type
- REASONING: What you saw across the ENTIRE video that supports this call
- CONFIDENCE: High/Medium/Low

Base your decision on the COMPLETE video analysis, not just the final frame.
"""


def frames_summary(frame_texts: List[tuple]) -> str:
    """Join (index, text) pairs as "Frame N: text" blocks in ascending index order."""
    return "\n\n".join(f"Frame {index}: {text}" for index, text in sorted(frame_texts, key=lambda ft: ft[0]))


def synthesis_prompt(profile: SportProfile, summary: str, video_analysis: str, rules_text: str) -> str:
    return f"""
You are a PROFESSIONAL {profile.name.upper()} UMPIRE combining multiple AI analyses to make an expert decision.

MULTIMODAL ANALYSIS TASK:
Combine the detailed frame analysis with the complete video analysis using the rules below.

FRAME ANALYSIS (Frame Details):
{summary}

VIDEO ANALYSIS (Complete Sequence):
{video_analysis}

RULES:
{rules_text}
SYNTHESIS:
1. How do the frame details support or contradict the video analysis?
2. Which of the rules above apply to what was observed?
3. Which analysis provides the most reliable evidence?
4. Are there any inconsistencies to resolve?

INTEGRATED DECISION:
Based on combining both analyses with the rules, provide:
- Situation assessment
- Key evidence summary
- Rule application
- Confidence level
- Preliminary decision with reasoning
"""


def final_decision_prompt(profile: SportProfile, synthesis: str, duration: float) -> str:
    return f"""
You are a PROFESSIONAL {profile.name.upper()} UMPIRE making a LIVE MATCH DECISION based on comprehensive AI analysis.

VIDEO DURATION: {duration} seconds
COMPREHENSIVE ANALYSIS: {synthesis}

This is your FINAL OFFICIAL UMPIRE CALL.

DECISION: [{_decision_choices(profile)} - be decisive]

REASONING: [Key evidence that supports this call]

CONFIDENCE: [High/Medium/Low]

OFFICIAL CALL: [Exactly how you would announce this in a real match]

Make your call now - the players and crowd are waiting!
"""
