"""Fixed topic taxonomy used by the topic classifier.

Each label carries one descriptive sentence; the classifier embeds
``"{label}: {description}"`` so the vector captures more than the name.
"""

from __future__ import annotations

TOPICS: dict[str, str] = {
    "Chemistry": "Chemistry, molecules, reactions, organic, inorganic, physical chemistry, spectroscopy, lab methods",
    "Education": "Teaching, learning, pedagogy, curriculum, assessment, classrooms, students, teachers",
    "Arts, Design & Media": "Art, design, graphic design, UX, UI, film, photography, music, media studies, visual arts",
    "Languages & Literature": "Linguistics, grammar, translation, literature analysis, novels, poetry, rhetoric",
    "History & Archaeology": "History, historical events, archaeology, ancient civilizations, cultural heritage",
    "Philosophy & Ethics": "Philosophy, ethics, morality, epistemology, metaphysics, logic, ethical dilemmas",
    "Social & Behavioural Sciences": "Psychology, sociology, anthropology, human behavior, surveys, social science",
    "Journalism & Information": "Journalism, news, reporting, information science, libraries, media law, fact-checking",
    "Business Administration": "Business, management, marketing, finance, operations, entrepreneurship, strategy",
    "Law & Policy": "Law, legal systems, regulation, public policy, governance, compliance, constitutional law",
    "Biological Sciences": "Biology, genetics, microbiology, physiology, ecology, evolution, biotechnology",
    "Environmental Sciences": "Environment, climate change, sustainability, ecology, conservation, pollution",
    "Earth Sciences": "Geology, geophysics, meteorology, oceanography, earth systems, tectonics, minerals",
    "Physics": "Physics, mechanics, electromagnetism, quantum, thermodynamics, relativity, optics",
    "Mathematics & Statistics": "Mathematics, calculus, algebra, probability, statistics, data analysis, theorems",
    "Computer Science": "Computer science, algorithms, data structures, programming, systems, databases, software",
    "AI": "Artificial intelligence, machine learning, deep learning, neural networks, LLMs, NLP, computer vision",
}

# Tag given to freshly uploaded documents; dropped once real topics are known.
PLACEHOLDER_TAG = "uploaded"


def label_inputs(topics: dict[str, str] | None = None) -> list[tuple[str, str]]:
    """Return ``(label, embedding_input)`` pairs in taxonomy order."""
    topics = topics if topics is not None else TOPICS
    return [(label, f"{label}: {description}") for label, description in topics.items()]
