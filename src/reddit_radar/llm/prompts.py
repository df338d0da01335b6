"""LLM prompt templates."""

TRIAGE_PROMPT = """You are triaging Reddit posts to identify potential business opportunities for deeper analysis.

POST TITLE: {title}
POST BODY: {body}
SUBREDDIT: r/{subreddit}
UPVOTES: {score}
COMMENTS: {num_comments}

PASS TRIAGE (score 7-10):
- Someone frustrated with a manual/tedious process
- "Is there a tool/app that does X?"
- "I wish there was a way to..."
- Describing a specific workflow problem with no good solution
- Pain point with evidence of demand (upvotes, "me too" comments)
- Addressable in weeks or months by a small team

FAIL TRIAGE (score 0-3):
- Someone promoting/showing off their own project
- Asking for feedback on something they built
- General advice questions (career, relationships, health)
- Vague wishes without specific problems
- Problems that can't be solved with software
- Already well-served markets (another todo app, note-taking, etc.)

Be VERY strict. 95% of posts should FAIL triage. Only pass posts with clear, specific, buildable pain points."""


EVALUATION_PROMPT = """You are evaluating a Reddit post that already passed a first triage pass. Decide whether it describes a viable business opportunity for a small software team.

POST TITLE: {title}
POST BODY: {body}
SUBREDDIT: r/{subreddit}
UPVOTES: {score}
COMMENTS: {num_comments}

TRIAGE SCORE: {triage_score}/10
TRIAGE NOTES: {triage_reason}

Score the opportunity from 0-10 using this STRICT rubric:
- Pain: how specific and painful is the problem? Is it recurring?
- Demand: is there evidence that other people share it (upvotes, replies, "me too")?
- Willingness to pay: would the people with this problem plausibly pay for a fix?
- Buildability: can a small team ship a useful first version in weeks or months?
- Competition: is the market open, or already served by well-known products?

IS AN OPPORTUNITY (score 7-10):
- Clear, specific, recurring pain with evidence of demand
- A buyer who plausibly pays (businesses, professionals, prosumers)
- A software product a small team could build and sell

NOT AN OPPORTUNITY (score 0-4):
- One-off problems, novelty requests, or pure curiosity
- Needs hardware, regulation changes, or large capital to solve
- Saturated category with strong incumbents
- Self-promotion that slipped through triage

Keep the reason to 1-2 sentences naming the deciding factor."""
