"""Default checklist definitions and the conventional section vocabulary."""

from __future__ import annotations

from typing import Dict, List, Tuple

from checklist.models import ChecklistItem, ChecklistType

CPR_SECTIONS: Tuple[str, ...] = (
    "danger",
    "respons",
    "shout_for_help",
    "airway",
    "breathing",
    "circulation",
    "defribillation",
)

CHOKING_SECTIONS: Tuple[str, ...] = (
    "assess_severity",
    "mild_choking",
    "severe_choking",
    "victim_unconscious",
)

CPR_TYPES = frozenset({ChecklistType.ONE_MAN_CPR, ChecklistType.TWO_MAN_CPR, ChecklistType.INFANT_CPR})

# CPR items in these sections gate a PASS.
COMPULSORY_CPR_SECTIONS = frozenset({"airway", "breathing", "circulation"})

_IHCA_SHOUT = 'For IHCA - Shout "Emergency! Emergency! Bring the resuscitation trolley and defibrillator/AED!"'
_DANGER_FULL = "Wear PPE (gloves, apron, mask), look out for blood spills, sharps, electric wires. Unsteady beds, trolley"
_ASSESS_BREATHING = (
    "Determine while opening the airway by looking at the chest, in not more than 10 seconds "
    "(and if you are trained, simultaneously feel for the presence of pulse)"
)
_NO_BLIND_SWEEP = "-During airway opening, check for foreign body, do not perform a blind finger sweep."

# (section, item text); compulsory flags derive from the section for CPR types.
_DEFAULTS: Dict[ChecklistType, Tuple[Tuple[str, str], ...]] = {
    ChecklistType.ONE_MAN_CPR: (
        ("danger", "Wear PPE (gloves, apron, mask)"),
        ("danger", "Look out for hazard"),
        ("respons", "Shoulder tap"),
        ("respons", 'Shout & speak "are you okay?"'),
        ("shout_for_help", _IHCA_SHOUT),
        ("airway", "Head Tilt Chin Lift"),
        ("airway", "Jaw Thrust"),
        ("breathing", _ASSESS_BREATHING),
        ("breathing", "Chest compression shall begin with absence of normal breathing or no pulse"),
        ("circulation", "Performed high quality of CPR"),
        ("circulation", "Location -middle of chest, lower half of sternum"),
        ("circulation", "Rate of compression: 100-120/min"),
        ("circulation", "Depth of compression: 5-6 cm"),
        ("circulation", "Full recoil after each compression"),
        ("circulation", "Minimize Interruption"),
        ("circulation", "Compressions to ventilations ratio, 30:2"),
        ("circulation", "Each ventilation in 1 second"),
        ("defribillation", "As soon as the AED arrives, or if one is already available at the site of the cardiac arrest"),
        ("defribillation", "Switch on the AED and follow voice prompt"),
        ("defribillation", "Attach the electrode pads"),
        ("defribillation", "Clear the victim during rhythm analysis"),
        (
            "defribillation",
            'If shock is advised: i. Clears the victim and loudly state "Stand Clear" '
            "ii. Push shock button as directed iii. Immediately resume CPR",
        ),
        ("defribillation", "If no shock is indicated, continue CPR"),
    ),
    ChecklistType.TWO_MAN_CPR: (
        ("danger", _DANGER_FULL),
        ("respons", "Shoulder tap"),
        ("respons", 'Shout & speak "are you okay?"'),
        ("shout_for_help", _IHCA_SHOUT),
        ("airway", "Head Tilt Chin Lift"),
        ("airway", "Jaw Thrust"),
        ("breathing", _ASSESS_BREATHING),
        ("breathing", "Chest compression shall begin with absence of normal breathing or no pulse"),
        ("circulation", "Location - middle of chest, lower half of sternum"),
        ("circulation", "Rate of compression: 100-120/min"),
        ("circulation", "Depth of compression: 5-6 cm"),
        ("circulation", "Full recoil after each compression"),
        ("circulation", "Minimize Interruption"),
        ("circulation", "Compressions to ventilations ratio, 30:2"),
        ("circulation", "Each ventilation in 1 second"),
        ("defribillation", "2nd Rescuer arrives and turn on AED"),
        ("defribillation", "2nd Rescuer attach pads while the 1st rescuer continue chest compression"),
        ("defribillation", "2nd Rescuer clear the victim allowing AED rhythm analysis, RESCUERS SWITCH ROLES"),
        (
            "defribillation",
            'If shock is advised 2nd rescuer clears the victim and loudly state "Stand Clear" then press the shock button',
        ),
        (
            "defribillation",
            "After shock, BOTH rescuers immediately resume CPR for 5 cycles or about 2 minutes; "
            "1st rescuer provide ventilation, 2nd rescuer provide chest compression",
        ),
        ("defribillation", "If no shock is indicated, BOTH rescuers provide CPR as above"),
        ("defribillation", "After 5 cycles or about 2 minutes of CPR, the AED will prompt rescuer to repeat steps (c to e)"),
        (
            "defribillation",
            "Reassess and RESCUERS SWITCH during AED analysis. If AED not available, "
            "rescuers switch role after CPR for 5 cycles or 2 minutes",
        ),
    ),
    ChecklistType.INFANT_CPR: (
        ("danger", _DANGER_FULL),
        ("respons", "Tap baby soles"),
        ("respons", "Shout & speak CALL THE INFANT"),
        ("shout_for_help", _IHCA_SHOUT),
        ("airway", "Head Tilt Chin Lift"),
        ("airway", "Jaw Thrust (Trauma)"),
        ("breathing", "Look for normal breathing, should not take more than 10 seconds."),
        ("breathing", "Absent/ abnormal breathing - Give 5 initial rescue breaths"),
        ("breathing", "Duration of delivering a breath is about 1 second sufficient to produce a visible chest rise"),
        (
            "circulation",
            "Assess the circulation - Look for signs of life or if you are trained feel for brachial pulse "
            "for not more than 10 seconds.",
        ),
        (
            "circulation",
            "Start chest compression if there are no signs of life or the pulse rate is less than 60 beats/min.",
        ),
        ("circulation", "Compression technique: For one rescuer CPR - the rescuer compresses with the tips of 2 fingers."),
        ("circulation", "Compression technique: For two rescuers CPR - two thumb chest compression technique"),
        ("circulation", "Site of Compression - Lower half of the sternum."),
        ("circulation", "Depth of Compression: At least 1/3 the depth of the chest at least 4cm."),
        ("circulation", "Rate of Compression: At least 100-120/min"),
        ("circulation", "Ratio of Compressions to Breaths: One or two Rescuer CPR - 15:2"),
        (
            "circulation",
            "Unconscious infant whose airway is clear and breathing normally should be put on recovery position (lateral)",
        ),
    ),
    ChecklistType.ADULT_CHOKING: (
        ("assess_severity", "Ask: Are you choking? Are you ok?"),
        ("assess_severity", "Mild - effective cough"),
        ("assess_severity", "Severe - the cough becomes ineffective"),
        ("mild_choking", "a. Encourage the victim to cough"),
        ("severe_choking", "a. Give 5 back blows:"),
        ("severe_choking", "i. Lean the victim forwards."),
        ("severe_choking", "ii. Apply blows between the shoulder blades using the heel of one hand"),
        ("severe_choking", "b. If back blows are ineffective, give 5 abdominal thrusts:"),
        (
            "severe_choking",
            "i. Stand behind the victim and put both your arms around the upper part of the victim's abdomen.",
        ),
        ("severe_choking", "ii. Lean the victim forwards."),
        ("severe_choking", "iii. Clench your fist and place it between the umbilicus (navel) and the ribcage."),
        ("severe_choking", "iv. Grasp your fist with the other hand and pull sharply inwards and upwards."),
        (
            "severe_choking",
            "c. Continue alternating 5 back blows with 5 abdominal thrusts until it is relieved, "
            "or the victim becomes unconscious.",
        ),
        ("severe_choking", "d. Perform chest thrust for pregnant and very obese victims"),
        ("victim_unconscious", "a. Start CPR"),
        ("victim_unconscious", _NO_BLIND_SWEEP),
    ),
    ChecklistType.INFANT_CHOKING: (
        ("assess_severity", "Mild:"),
        (
            "assess_severity",
            "coughing effectively (fully responsive, loud cough, taking a breath before coughing), "
            "still crying, or speaking",
        ),
        ("assess_severity", "Severe:"),
        (
            "assess_severity",
            "- ineffective cough, inability to cough, decreasing consciousness, inability to breathe or vocalise, cyanosis.",
        ),
        ("mild_choking", "a Encourage the child to cough and continue monitoring the child's condition"),
        ("severe_choking", "a Ask for help"),
        ("severe_choking", "i. second rescuer should call MERS 999, preferably by mobile phone (speaker function)."),
        (
            "severe_choking",
            "ii. A single trained rescuer should first proceed with rescue manoeuvres "
            "(unless able to call simultaneously with the speaker function activated)",
        ),
        ("severe_choking", "b Perform 5 back blows and followed with 5 chest thrusts"),
        ("severe_choking", "Back Blows"),
        (
            "severe_choking",
            "i. Support the infant in a head-downwards, prone position by placing the thumb of one hand at the angle "
            "of the lower jaw. Deliver up to 5 sharp back blows with the heel of one hand in the middle of the back "
            "between the shoulder blades.",
        ),
        ("severe_choking", "Chest Thrust"),
        (
            "severe_choking",
            "i. Turn the infant into a head-downwards supine position and place free arm along the infant's back "
            "and encircling the occiput with your hand.",
        ),
        (
            "severe_choking",
            "ii. Identify the landmark - lower sternum approximately a finger's breadth above the xiphisternum "
            "to deliver up to 5 chest thrusts.",
        ),
        (
            "severe_choking",
            "c Continue the sequence of back blows and chest trust ff the foreign body has not been expelled "
            "and the victim is still conscious.",
        ),
        ("victim_unconscious", "Start CPR and emphasize on"),
        ("victim_unconscious", _NO_BLIND_SWEEP),
        ("victim_unconscious", "-Repositioning the head if no chest rises after each breath."),
    ),
}


def valid_sections(checklist_type: ChecklistType | str) -> Tuple[str, ...]:
    """Conventional sections for a type. Advisory only; other names are accepted."""
    if ChecklistType(checklist_type) in CPR_TYPES:
        return CPR_SECTIONS
    return CHOKING_SECTIONS


def expected_compulsory(checklist_type: ChecklistType | str, section: str) -> bool:
    return ChecklistType(checklist_type) in CPR_TYPES and section in COMPULSORY_CPR_SECTIONS


def default_items(checklist_type: ChecklistType | str) -> List[ChecklistItem]:
    """Unpersisted default items for a checklist type, numbered from 1."""
    kind = ChecklistType(checklist_type)
    return [
        ChecklistItem(
            checklist_type=kind,
            section=section,
            item=text,
            is_compulsory=expected_compulsory(kind, section),
            order_index=index,
        )
        for index, (section, text) in enumerate(_DEFAULTS[kind], start=1)
    ]
