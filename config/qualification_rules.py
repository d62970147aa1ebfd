"""Default qualification steps, keyword extraction rules and value categories.

Rules are evaluated top to bottom; when two rules for the same field match
one utterance, the one listed later wins. Keywords are matched
case-insensitively as whole words (a trailing plural "s"/"es" is allowed).
A keyword ending in ``*`` is a stem and matches any word it starts, so
"automat*" also matches "automation". ``patterns`` are raw regexes whose
matched text becomes the value.
"""
QUALIFICATION_STEPS = [
    {
        "step": 1,
        "title": "Understanding the Problem",
        "question": (
            "How would you describe the task or process this problem affects? "
            "For example, is it related to customer support, sales, finance, "
            "operations, or something else? It also helps to know your role and "
            "which industry you're in."
        ),
        "required_fields": ["problemType", "jobFunction", "industry"],
        "optional_fields": [],
    },
    {
        "step": 2,
        "title": "Exploring Solution Preference",
        "question": (
            "Are you looking for an off-the-shelf solution you can plug in quickly, "
            "or are you open to building something more custom with internal or "
            "external help?"
        ),
        "required_fields": ["solutionType", "implementationCapacity"],
        "optional_fields": ["techCapability"],
    },
    {
        "step": 3,
        "title": "Gauging Business Urgency",
        "question": (
            "How urgent is solving this for you right now? Are you just exploring, "
            "or is there active pressure to implement something soon? And who makes "
            "the final call on this?"
        ),
        "required_fields": ["businessUrgency", "decisionRole"],
        "optional_fields": [],
    },
    {
        "step": 4,
        "title": "Budget Clarity",
        "question": (
            "Do you already have a budget allocated for this AI project, or are you "
            "still figuring that out?"
        ),
        "required_fields": ["budgetStatus"],
        "optional_fields": ["budgetAmount"],
    },
]

FOLLOW_UP_QUESTIONS = {
    "problemType": "What kind of problem are you trying to solve? Customer support, sales, reporting, something else?",
    "jobFunction": "What's your role at the company?",
    "industry": "What industry is your company in?",
    "solutionType": "Would you rather buy something off the shelf, or build something custom?",
    "implementationCapacity": "Would your internal team handle the implementation, or would you need external help?",
    "techCapability": "How technical is your team today?",
    "businessUrgency": "What kind of timeline are you working with?",
    "decisionRole": "Are you the one who makes the final decision on this, or are others involved?",
    "budgetStatus": "Is there a budget set aside for this yet, or is it still being worked out?",
    "budgetAmount": "Do you have a rough budget range in mind?",
}

COMPLETION_MESSAGE = (
    "Perfect! I have everything I need. Let me connect you with the right AI "
    "vendors who specialize in your type of project."
)


OPTIONAL_PROMPT_SUFFIX = "(This helps me match you better, but feel free to skip if you're not sure.)"

EXTRACTION_RULES = [
    # Problem type
    {"field": "problemType", "value": "customer_support",
     "keywords": ["customer support", "customer service", "helpdesk", "help desk", "support ticket", "ticket"]},
    {"field": "problemType", "value": "sales_marketing",
     "keywords": ["sales", "marketing", "lead gen", "leads", "crm", "campaign"]},
    {"field": "problemType", "value": "hiring_recruitment",
     "keywords": ["hiring", "recruit*", "talent", "candidate"]},
    {"field": "problemType", "value": "data_analysis",
     "keywords": ["analytics", "dashboard", "reporting", "data analysis", "insight"]},
    {"field": "problemType", "value": "financial_management",
     "keywords": ["accounting", "invoic*", "expense", "bookkeeping", "finance team"]},
    {"field": "problemType", "value": "document_processing",
     "keywords": ["document*", "contract", "paperwork", "pdf"]},
    {"field": "problemType", "value": "inventory_management",
     "keywords": ["inventory", "inventories", "warehous*", "stock level"]},
    {"field": "problemType", "value": "process_automation",
     "keywords": ["automat*", "workflow", "manual process"]},
    {"field": "problemType", "value": "compliance_reporting",
     "keywords": ["compliance", "regulat*", "audit*"]},
    {"field": "problemType", "value": "fraud_detection",
     "keywords": ["fraud*"]},

    # Industry
    {"field": "industry", "value": "technology",
     "keywords": ["software", "saas", "tech company", "technology", "technologies", "startup"]},
    {"field": "industry", "value": "healthcare",
     "keywords": ["healthcare", "health care", "medical", "hospital", "clinic"]},
    {"field": "industry", "value": "finance",
     "keywords": ["fintech", "bank", "banking", "financial services", "finance industry"]},
    {"field": "industry", "value": "insurance",
     "keywords": ["insurance", "insurer"]},
    {"field": "industry", "value": "retail",
     "keywords": ["retail*", "ecommerce", "e-commerce", "online store"]},
    {"field": "industry", "value": "manufacturing",
     "keywords": ["manufactur*", "factory", "factories"]},
    {"field": "industry", "value": "construction",
     "keywords": ["construction"]},
    {"field": "industry", "value": "education",
     "keywords": ["education*", "school", "university", "universities"]},
    {"field": "industry", "value": "government",
     "keywords": ["government*", "public sector", "municipal*"]},
    {"field": "industry", "value": "real_estate",
     "keywords": ["real estate", "property management"]},
    {"field": "industry", "value": "legal",
     "keywords": ["law firm", "legal"]},
    {"field": "industry", "value": "logistics",
     "keywords": ["logistics", "shipping", "transportation"]},

    # Job function (titles); more senior titles are listed later
    {"field": "jobFunction", "value": "individual_contributor",
     "keywords": ["engineer", "developer", "analyst", "specialist"]},
    {"field": "jobFunction", "value": "consultant",
     "keywords": ["consultant", "consulting", "freelance*"]},
    {"field": "jobFunction", "value": "manager",
     "keywords": ["manager", "team lead", "team leader", "supervisor"]},
    {"field": "jobFunction", "value": "director",
     "keywords": ["director", "head of"]},
    {"field": "jobFunction", "value": "founder",
     "keywords": ["founder", "co-founder", "owner"]},
    {"field": "jobFunction", "value": "c_level",
     "keywords": ["ceo", "cto", "cfo", "coo", "cio", "chief", "president"]},
    {"field": "jobFunction", "value": "vp",
     "keywords": ["vp", "vice president", "vice-president"]},

    # Solution type
    {"field": "solutionType", "value": "custom_build",
     "keywords": ["custom", "customiz*", "customis*", "bespoke", "build", "from scratch", "tailored"]},
    {"field": "solutionType", "value": "off_the_shelf",
     "keywords": ["off-the-shelf", "off the shelf", "plug in", "plug-and-play", "out of the box", "existing tool"]},
    {"field": "solutionType", "value": "hybrid",
     "keywords": ["hybrid", "mix of both", "combination of"]},

    # Implementation capacity
    {"field": "implementationCapacity", "value": "internal_team",
     "keywords": ["internal team", "in-house", "in house", "our engineers", "our developers", "our it team"]},
    {"field": "implementationCapacity", "value": "external_help",
     "keywords": ["external", "outsourc*", "agency", "agencies", "vendor", "partner"]},
    {"field": "implementationCapacity", "value": "mixed",
     "keywords": ["mix of both", "both internal", "combination of"]},

    # Technical capability
    {"field": "techCapability", "value": "low",
     "keywords": ["excel", "spreadsheet", "non-technical", "not technical"]},
    {"field": "techCapability", "value": "medium",
     "keywords": ["some experience", "learning"]},
    {"field": "techCapability", "value": "high",
     "keywords": ["python", "api", "cloud", "aws", "data team", "engineering team"]},

    # Timeline / urgency; most urgent listed last
    {"field": "businessUrgency", "value": "exploring",
     "keywords": ["exploring", "just looking", "no rush", "curious"]},
    {"field": "businessUrgency", "value": "1_year_plus",
     "keywords": ["next year", "within a year", "long term", "long-term", "12 months"]},
    {"field": "businessUrgency", "value": "3_to_6_months",
     "keywords": ["6 months", "six months", "3-6", "next quarter", "this half"]},
    {"field": "businessUrgency", "value": "under_3_months",
     "keywords": ["urgent*", "asap", "immediately", "right away", "this month", "next month", "few weeks"]},

    # Decision role
    {"field": "decisionRole", "value": "researcher",
     "keywords": ["researching", "gathering info", "evaluating options"]},
    {"field": "decisionRole", "value": "influencer",
     "keywords": ["recommend*", "influenc*", "part of the team", "committee"]},
    {"field": "decisionRole", "value": "final_decision",
     "keywords": ["final decision", "final say", "i decide", "make the call", "sign off", "decision maker"]},

    # Budget status
    {"field": "budgetStatus", "value": "just_exploring",
     "keywords": ["no budget", "still figuring", "haven't set", "not sure about budget"]},
    {"field": "budgetStatus", "value": "in_planning",
     "keywords": ["planning", "working on a budget", "next budget cycle"]},
    {"field": "budgetStatus", "value": "awaiting_approval",
     "keywords": ["approval", "pending"]},
    {"field": "budgetStatus", "value": "approved",
     "keywords": ["approved", "allocated", "budget ready", "set aside", "budget in place"]},

    # Budget amount (value is the matched text)
    {"field": "budgetAmount",
     "patterns": [
         r"\$\s?\d[\d,]*(?:\.\d+)?\s?(?:million|thousand|k|m)?\b",
         r"\b\d[\d,]*(?:\.\d+)?\s?(?:million|thousand|k)\b",
     ]},
]

# Coarse category per extracted value, stored alongside as ``<field>Category``
FIELD_CATEGORIES = {
    "problemType": {
        "customer_support": "communication",
        "sales_marketing": "communication",
        "hiring_recruitment": "management",
        "data_analysis": "analytics",
        "financial_management": "management",
        "document_processing": "automation",
        "inventory_management": "management",
        "process_automation": "automation",
        "compliance_reporting": "analytics",
        "fraud_detection": "analytics",
    },
    "industry": {
        "technology": "tech",
        "healthcare": "service",
        "finance": "service",
        "insurance": "service",
        "retail": "product",
        "manufacturing": "product",
        "construction": "product",
        "education": "service",
        "government": "government",
        "real_estate": "service",
        "legal": "service",
        "logistics": "service",
    },
    "jobFunction": {
        "individual_contributor": "individual_contributor",
        "consultant": "individual_contributor",
        "manager": "management",
        "director": "management",
        "founder": "executive",
        "c_level": "executive",
        "vp": "executive",
    },
    "solutionType": {
        "custom_build": "build",
        "off_the_shelf": "buy",
        "hybrid": "partner",
    },
    "implementationCapacity": {
        "internal_team": "internal",
        "external_help": "external",
        "mixed": "hybrid",
    },
    "techCapability": {
        "low": "non_technical",
        "medium": "mixed",
        "high": "technical",
    },
    "businessUrgency": {
        "exploring": "research",
        "1_year_plus": "planned",
        "3_to_6_months": "planned",
        "under_3_months": "urgent",
    },
    "decisionRole": {
        "researcher": "researcher",
        "influencer": "influencer",
        "final_decision": "decision_maker",
    },
    "budgetStatus": {
        "just_exploring": "research",
        "in_planning": "pending",
        "awaiting_approval": "pending",
        "approved": "approved",
    },
}
