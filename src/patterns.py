"""
Multilingual importance pattern dictionaries.

Keyword lists for detecting importance signals in English, Spanish, French,
German, Portuguese, Italian, Dutch, Turkish, Polish, Russian, Japanese,
Chinese, Korean, Arabic and Hindi.

Latin-script keywords are compiled into one word-bounded, case-insensitive
regex per category. Lookarounds stand in for \\b so that keywords ending in
punctuation ("no,") still match. Other scripts have no useful word
boundaries, so those keywords are matched as plain substrings.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Tuple


@dataclass
class ImportanceSignal:
    """A single weighted importance detection"""
    type: str
    source: str
    weight: float


@dataclass(frozen=True)
class PatternCategory:
    """A signal type with its weight and keyword lists"""
    signal_type: str
    weight: float
    latin: Tuple[str, ...]
    non_latin: Tuple[str, ...] = ()

    @property
    def regex(self) -> Optional["re.Pattern"]:
        return _compile_latin(self.latin)


@lru_cache(maxsize=None)
def _compile_latin(keywords: Tuple[str, ...]) -> Optional["re.Pattern"]:
    if not keywords:
        return None
    escaped = "|".join(re.escape(k) for k in keywords)
    return re.compile(rf"(?<!\w)({escaped})(?!\w)", re.IGNORECASE)


# ==================== IMPORTANCE CATEGORIES ====================

EXPLICIT_REMEMBER = PatternCategory(
    signal_type="explicit_remember",
    weight=0.9,
    latin=(
        # English
        "remember this", "don't forget", "keep in mind", "note that", "important to remember",
        "make sure to remember", "never forget", "always remember",
        # Spanish
        "recuerda esto", "no olvides", "ten en cuenta", "nota que", "importante recordar",
        # French
        "souviens-toi", "n'oublie pas", "garde en tête", "note que", "retiens",
        # German
        "merk dir", "vergiss nicht", "beachte", "denk daran", "wichtig zu merken",
        # Portuguese
        "lembre-se", "não esqueça", "tenha em mente", "importante lembrar",
        # Italian
        "ricorda questo", "non dimenticare", "tieni a mente", "nota che",
        # Dutch
        "onthoud dit", "vergeet niet", "houd in gedachten", "let op",
        # Turkish
        "bunu unutma", "aklında tut", "dikkat et", "not et",
        # Polish
        "zapamiętaj to", "nie zapomnij", "pamiętaj że", "zwróć uwagę",
        # Russian (transliterated)
        "zapomni eto", "ne zabud",
    ),
    non_latin=(
        # Japanese
        "覚えておいて", "忘れないで", "覚えて", "メモして", "重要なこと",
        # Chinese
        "记住这个", "不要忘记", "请记住", "重要的是", "注意",
        "記住這個", "不要忘記", "請記住",
        # Korean
        "기억해", "잊지마", "명심해", "메모해",
        # Russian
        "запомни это", "не забудь", "имей в виду", "обрати внимание",
        # Arabic
        "تذكر هذا", "لا تنسى", "ضع في اعتبارك",
        # Hindi
        "याद रखो", "मत भूलो", "ध्यान रखें",
    ),
)

EMPHASIS_CUE = PatternCategory(
    signal_type="emphasis_cue",
    weight=0.8,
    latin=(
        # English
        "always", "never", "must", "critical", "essential", "crucial", "vital",
        "extremely important", "absolutely", "definitely", "certainly",
        # Spanish
        "siempre", "nunca", "debe", "crítico", "esencial", "absolutamente", "definitivamente",
        # French
        "toujours", "jamais", "doit", "critique", "essentiel", "absolument", "certainement",
        # German
        "immer", "niemals", "muss", "kritisch", "wesentlich", "entscheidend",
        "unbedingt", "definitiv",
        # Portuguese
        "sempre", "deve", "essencial",
        # Italian
        "mai", "critico", "essenziale", "cruciale", "assolutamente", "certamente",
        # Dutch
        "altijd", "nooit", "moet", "kritiek", "essentieel", "cruciaal", "absoluut", "zeker",
        # Turkish
        "her zaman", "asla", "mutlaka", "kritik", "temel", "kesinlikle",
        # Polish
        "zawsze", "nigdy", "musi", "krytyczny", "niezbędny", "kluczowy",
        "absolutnie", "zdecydowanie",
    ),
    non_latin=(
        # Japanese
        "必ず", "絶対に", "常に", "決して", "重要", "必須", "不可欠",
        # Chinese
        "必须", "一定要", "总是", "从不", "关键", "绝对",
        "總是", "從不", "關鍵", "絕對",
        # Korean
        "항상", "절대", "반드시", "필수", "중요한", "결정적인",
        # Russian
        "всегда", "никогда", "должен", "критично", "важно", "обязательно",
        # Arabic
        "دائما", "أبدا", "يجب", "حرج", "أساسي", "بالتأكيد",
        # Hindi
        "हमेशा", "कभी नहीं", "ज़रूरी", "महत्वपूर्ण", "अनिवार्य",
    ),
)

CORRECTION = PatternCategory(
    signal_type="correction",
    weight=0.7,
    latin=(
        # English ("actually" is too common in plain explanations)
        "wait", "no,", "correction", "wrong", "mistake", "oops",
        "sorry, I meant", "let me correct", "that's not right", "I was wrong",
        "my bad", "scratch that", "disregard",
        # Spanish
        "en realidad", "espera", "corrección", "incorrecto", "error",
        "perdón, quise decir", "me equivoqué",
        # French
        "en fait", "attends", "non,", "faux", "erreur",
        "pardon, je voulais dire", "je me suis trompé",
        # German
        "eigentlich", "warte", "nein,", "korrektur", "falsch", "fehler",
        "ich meinte", "das war falsch",
        # Portuguese
        "na verdade", "não,", "correção", "errado", "erro",
        "desculpa, quis dizer", "me enganei",
        # Italian
        "in realtà", "aspetta", "correzione", "sbagliato", "errore",
        "scusa, intendevo", "mi sono sbagliato",
        # Dutch
        "eigenlijk", "wacht", "nee,", "correctie", "fout", "vergissing", "ik bedoelde",
        # Turkish
        "aslında", "bekle", "hayır,", "düzeltme", "yanlış", "hata",
        # Polish
        "właściwie", "czekaj", "nie,", "korekta", "błąd", "pomyłka", "miałem na myśli",
    ),
    non_latin=(
        # Japanese
        "実は", "ちょっと待って", "違う", "訂正", "間違い", "ごめん",
        # Chinese
        "其实", "等一下", "不对", "更正", "错了", "抱歉",
        "其實", "不對", "錯了",
        # Korean
        "사실", "잠깐", "아니", "수정", "틀렸어", "죄송",
        # Russian
        "на самом деле", "подожди", "нет,", "исправление", "ошибка", "неправильно",
        # Arabic
        "في الواقع", "انتظر", "لا،", "تصحيح", "خطأ",
        # Hindi
        "असल में", "रुको", "नहीं,", "सुधार", "गलती", "माफ करें",
    ),
)

PREFERENCE = PatternCategory(
    signal_type="preference",
    weight=0.6,
    latin=(
        # English ("like" and "want" are too common)
        "prefer", "don't like", "hate", "avoid",
        "I'd rather", "better if", "instead of", "rather than",
        "I prefer", "my preference", "I dislike",
        # Spanish
        "prefiero", "no me gusta", "odio", "evitar", "preferiría", "mejor si",
        # French
        "je préfère", "je n'aime pas", "je déteste", "éviter", "plutôt", "mieux si",
        # German
        "bevorzuge", "mag nicht", "hasse", "vermeiden", "lieber", "besser wenn",
        # Portuguese
        "prefiro", "não gosto", "odeio", "preferiria", "melhor se",
        # Italian
        "preferisco", "non mi piace", "evitare", "piuttosto", "meglio se",
        # Dutch
        "ik geef de voorkeur", "ik haat", "vermijden", "liever", "beter als",
        # Turkish
        "tercih ederim", "sevmiyorum", "nefret", "kaçınmak",
        # Polish
        "wolę", "nie lubię", "nienawidzę", "unikać", "lepiej gdyby",
    ),
    non_latin=(
        # Japanese
        "好き", "嫌い", "欲しい", "避けたい", "の方がいい", "好み",
        # Chinese
        "喜欢", "不喜欢", "想要", "讨厌", "避免", "偏好", "宁愿",
        "喜歡", "不喜歡", "討厭", "寧願",
        # Korean
        "좋아해", "싫어해", "원해", "피하고 싶어", "선호해",
        # Russian
        "предпочитаю", "нравится", "хочу", "не нравится", "ненавижу", "избегать",
        # Arabic
        "أفضل", "أحب", "أريد", "لا أحب", "أكره", "تجنب",
        # Hindi
        "पसंद", "नापसंद", "चाहिए", "नफरत", "बचना",
    ),
)

DECISION = PatternCategory(
    signal_type="decision",
    weight=0.7,
    latin=(
        # English
        "decided", "decision", "chose", "going with", "let's use", "we'll use",
        "we decided", "the plan is", "settled on", "final choice",
        # Spanish
        "decidí", "decisión", "elegí", "vamos con", "usaremos", "el plan es",
        # French
        "décidé", "décision", "choisi", "on va utiliser", "le plan est",
        # German
        "entschieden", "entscheidung", "gewählt", "wir nehmen", "der plan ist",
        # Portuguese
        "decidi", "decisão", "escolhi", "vamos usar", "o plano é",
        # Italian
        "deciso", "decisione", "scelto", "useremo", "il piano è",
        # Dutch
        "besloten", "beslissing", "gekozen", "we gebruiken", "het plan is",
        # Turkish
        "karar verdim", "karar", "seçtim", "kullanacağız", "plan şu",
        # Polish
        "zdecydowałem", "decyzja", "wybrałem", "użyjemy", "plan jest",
    ),
    non_latin=(
        # Japanese
        "決めた", "決定", "選んだ", "にする", "使うことにした", "計画は",
        # Chinese
        "决定了", "选择了", "我们用", "计划是", "最终选择",
        "決定了", "選擇了", "我們用", "計劃是",
        # Korean
        "결정했어", "선택했어", "사용하기로", "계획은",
        # Russian
        "решил", "решение", "выбрал", "будем использовать", "план",
        # Arabic
        "قررت", "قرار", "اخترت", "سنستخدم", "الخطة",
        # Hindi
        "तय किया", "फैसला", "चुना", "इस्तेमाल करेंगे", "योजना है",
    ),
)

CONSTRAINT = PatternCategory(
    signal_type="constraint",
    weight=0.7,
    latin=(
        # English
        "can't", "cannot", "shouldn't", "must not", "forbidden", "not allowed",
        "don't ever", "never do", "off limits", "prohibited", "restricted",
        # Spanish
        "no puedo", "no puede", "no debería", "prohibido", "no permitido",
        "nunca hagas", "restringido",
        # French
        "ne peut pas", "ne doit pas", "interdit", "pas autorisé", "jamais faire",
        # German
        "kann nicht", "darf nicht", "verboten", "nicht erlaubt", "niemals",
        # Portuguese
        "não pode", "não deve", "proibido", "nunca faça",
        # Italian
        "non può", "non deve", "vietato", "non permesso", "mai fare",
        # Dutch
        "kan niet", "mag niet", "verboden", "niet toegestaan", "nooit doen",
        # Turkish
        "yapamam", "yapmamalı", "yasak", "izin verilmiyor", "asla yapma",
        # Polish
        "nie może", "nie wolno", "zabronione", "niedozwolone", "nigdy nie rób",
    ),
    non_latin=(
        # Japanese
        "できない", "してはいけない", "禁止", "許可されていない", "絶対にしない",
        # Chinese
        "不能", "不可以", "不允许", "绝不要", "不允許", "絕不要",
        # Korean
        "할 수 없어", "하면 안 돼", "금지", "허용되지 않아",
        # Russian
        "нельзя", "не может", "запрещено", "не разрешено", "никогда не делай",
        # Arabic
        "لا يمكن", "لا يجب", "ممنوع", "غير مسموح",
        # Hindi
        "नहीं कर सकते", "नहीं करना चाहिए", "मना है", "अनुमति नहीं",
    ),
)

# Generic "error", "fix", "issue" and "undefined" are too common in code talk
_BUG_FIX_ENGLISH = (
    "found a bug", "this is broken", "crash on", "crashes when", "fails when",
    "exception thrown", "exception occurs", "TypeError", "ReferenceError", "SyntaxError",
    "NullPointerException", "stack trace", "traceback", "segfault", "memory leak",
    "workaround", "patched", "bug fix", "hotfix",
)

BUG_FIX = PatternCategory(
    signal_type="bug_fix",
    weight=0.8,
    latin=_BUG_FIX_ENGLISH + (
        # Spanish
        "excepción lanzada", "traza de pila", "fallo del sistema", "solución alternativa",
        # French
        "exception levée", "trace de pile", "plantage système", "solution de contournement",
        # German
        "ausnahme geworfen", "stapelüberlauf", "systemabsturz",
        # Portuguese
        "exceção lançada", "rastreamento de pilha", "falha do sistema",
        # Italian
        "eccezione lanciata", "traccia dello stack", "arresto anomalo", "soluzione alternativa",
        # Dutch
        "uitzondering gegooid", "systeemcrash", "tijdelijke oplossing",
        # Turkish
        "istisna fırlatıldı", "yığın izi", "sistem çökmesi", "geçici çözüm",
        # Polish
        "wyjątek wyrzucony", "ślad stosu", "awaria systemu", "obejście problemu",
    ),
    non_latin=(
        # Japanese
        "バグ", "エラー", "例外", "クラッシュ", "失敗", "壊れた", "問題",
        "修正", "解決", "ワークアラウンド",
        # Chinese
        "错误", "异常", "崩溃", "失败", "问题", "修复",
        "錯誤", "異常", "崩潰", "問題", "修復",
        # Korean
        "버그", "오류", "예외", "크래시", "실패", "문제", "수정됨", "해결됨",
        # Russian
        "ошибка", "исключение", "сбой", "сломано", "проблема", "исправлено", "решено",
        # Arabic
        "خطأ", "استثناء", "تعطل", "مشكلة", "تم الإصلاح", "تم الحل",
        # Hindi
        "त्रुटि", "अपवाद", "क्रैश", "समस्या", "ठीक किया", "हल किया",
    ),
)

LEARNING = PatternCategory(
    signal_type="learning",
    weight=0.8,
    latin=(
        # English
        "learned", "realized", "discovered", "found out", "turns out",
        "TIL", "insight", "aha", "gotcha", "trick", "tip",
        "the key is", "the trick is", "the solution is", "the way to",
        "now I understand", "I see now",
        # Spanish
        "aprendí", "descubrí", "resulta que", "el truco es", "la clave es", "ahora entiendo",
        # French
        "j'ai appris", "j'ai découvert", "il s'avère", "l'astuce est", "la clé est",
        "maintenant je comprends",
        # German
        "gelernt", "entdeckt", "herausgefunden", "der trick ist", "der schlüssel ist",
        "jetzt verstehe ich",
        # Portuguese
        "aprendi", "descobri", "percebi", "o truque é", "a chave é", "agora entendo",
        # Italian
        "ho imparato", "ho scoperto", "il trucco è", "la chiave è", "ora capisco",
        # Dutch
        "geleerd", "ontdekt", "blijkt dat", "de truc is", "de sleutel is", "nu begrijp ik",
        # Turkish
        "öğrendim", "keşfettim", "anladım ki", "hile şu", "anahtar şu",
        # Polish
        "nauczyłem się", "odkryłem", "okazuje się", "sztuczka to", "klucz to", "teraz rozumiem",
    ),
    non_latin=(
        # Japanese
        "学んだ", "分かった", "発見した", "コツは", "ポイントは", "理解した",
        # Chinese
        "学到了", "发现了", "原来", "诀窍是", "关键是", "明白了",
        "學到了", "發現了", "原來", "訣竅是", "關鍵是",
        # Korean
        "배웠어", "알게 됐어", "발견했어", "비결은", "핵심은", "이해했어",
        # Russian
        "узнал", "обнаружил", "понял", "фишка в том", "ключ в том", "теперь понимаю",
        # Arabic
        "تعلمت", "اكتشفت", "اتضح", "الحيلة هي", "المفتاح هو", "الآن أفهم",
        # Hindi
        "सीखा", "पता चला", "समझ गया", "तरीका है", "कुंजी है",
    ),
)

ALL_PATTERNS: Tuple[PatternCategory, ...] = (
    EXPLICIT_REMEMBER,
    EMPHASIS_CUE,
    CORRECTION,
    PREFERENCE,
    DECISION,
    CONSTRAINT,
    BUG_FIX,
    LEARNING,
)


# ==================== CLASSIFICATION KEYWORDS ====================
# Narrower than the importance categories; checked in dict order, which is
# the classification priority.

CLASSIFICATION_PATTERNS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "bugfix": {
        "latin": _BUG_FIX_ENGLISH,
        "non_latin": (
            "バグ", "エラー", "修正", "解決",
            "错误", "修复", "解决", "錯誤", "修復",
            "버그", "오류", "수정",
            "ошибка", "исправлено",
            "خطأ", "إصلاح",
            "त्रुटि", "ठीक",
        ),
    },
    "learning": {
        "latin": (
            "learned", "realized", "discovered", "found out", "turns out",
            "TIL", "insight", "the key is", "the trick is", "now I understand",
        ),
        "non_latin": (
            "学んだ", "分かった", "発見",
            "学到", "发现", "明白", "學到", "發現",
            "배웠", "알게",
            "узнал", "понял",
            "تعلمت", "اكتشفت",
            "सीखा", "समझ",
        ),
    },
    "constraint": {
        "latin": (
            "can't", "cannot", "shouldn't", "must not", "forbidden", "not allowed",
            "never", "must", "prohibited", "restricted", "off limits",
        ),
        "non_latin": (
            "できない", "してはいけない", "禁止",
            "不能", "不可以", "不允许",
            "안 돼", "금지",
            "нельзя", "запрещено",
            "ممنوع", "لا يجب",
            "मना है", "नहीं",
        ),
    },
    "decision": {
        "latin": (
            "decided", "decision", "chose", "going with", "let's use", "we'll use",
            "settled on", "final choice", "the plan is",
        ),
        "non_latin": (
            "決めた", "決定", "選んだ",
            "决定", "选择", "選擇",
            "결정", "선택",
            "решил", "выбрал",
            "قررت", "اخترت",
            "तय किया", "चुना",
        ),
    },
    "preference": {
        "latin": (
            "prefer", "don't like", "hate", "avoid",
            "I'd rather", "better if", "I prefer", "my preference", "I dislike",
        ),
        "non_latin": (
            "好き", "嫌い", "好み",
            "喜欢", "不喜欢", "偏好", "喜歡", "不喜歡",
            "좋아", "싫어", "선호",
            "предпочитаю", "нравится",
            "أفضل", "أحب",
            "पसंद", "नापसंद",
        ),
    },
    "procedural": {
        "latin": (
            "step", "workflow", "process", "procedure", "how to", "the way to",
            "first", "then", "finally", "next",
        ),
        "non_latin": (
            "ステップ", "手順", "方法",
            "步骤", "流程", "步驟",
            "단계", "절차", "방법",
            "шаг", "процесс", "процедура",
            "خطوة", "إجراء",
            "कदम", "प्रक्रिया",
        ),
    },
}


# ==================== MATCHING ====================

def _match_non_latin(text: str, keywords: Tuple[str, ...]) -> Optional[str]:
    for keyword in keywords:
        if keyword in text:
            return keyword
    return None


def match_pattern(text: str, category: PatternCategory) -> Optional[ImportanceSignal]:
    """Return the first keyword hit for a category as a signal, or None."""
    regex = category.regex
    if regex is not None:
        match = regex.search(text)
        if match:
            return ImportanceSignal(category.signal_type, match.group(0), category.weight)

    keyword = _match_non_latin(text, category.non_latin)
    if keyword:
        return ImportanceSignal(category.signal_type, keyword, category.weight)

    return None


def match_all_patterns(text: str) -> List[ImportanceSignal]:
    """Run every importance category over text, one signal per matching category."""
    signals = []
    for category in ALL_PATTERNS:
        signal = match_pattern(text, category)
        if signal:
            signals.append(signal)
    return signals


def classify_by_patterns(text: str) -> Optional[str]:
    """
    Classify text by keyword presence.

    Categories are tried in priority order (bugfix, learning, constraint,
    decision, preference, procedural); the first one with any keyword
    present wins. Latin keywords are plain case-insensitive substrings here,
    not word-bounded.
    """
    lower_text = text.lower()

    for classification, keywords in CLASSIFICATION_PATTERNS.items():
        for keyword in keywords["latin"]:
            if keyword.lower() in lower_text:
                return classification
        for keyword in keywords["non_latin"]:
            if keyword in text:
                return classification

    return None
