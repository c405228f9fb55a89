from __future__ import annotations

from typing import List

from inbox_sorter.models import Category, Priority
from inbox_sorter.rules.base import BaseRule, MailText, RuleMatch


class UrgentRule(BaseRule):
    name = "urgent"
    category = Category.URGENT
    confidence = 0.75
    priority = Priority.HIGH
    needs_follow_up = True
    follow_up_suggestion = "Urgent attention required - review immediately"
    suggested_response = "Thank you for your urgent message. I will review and respond as soon as possible."

    PHRASES = (
        "urgent",
        "asap",
        "emergency",
        "immediately",
        "time sensitive",
        "time-sensitive",
        "action required",
        "response required",
        "final notice",
        "deadline today",
    )

    def match(self, mail: MailText) -> RuleMatch:
        hit = self.contains_any(mail.subject, self.PHRASES)
        if hit:
            return RuleMatch(True, f"subject contains '{hit}'")
        hit = self.contains_any(mail.body, ("emergency", "urgent", "asap"))
        if hit:
            return RuleMatch(True, f"body contains '{hit}'")
        return RuleMatch(False)


class FinanceRule(BaseRule):
    name = "finance"
    category = Category.FINANCE
    confidence = 0.8
    priority = Priority.MEDIUM
    needs_follow_up = True
    follow_up_suggestion = "Check the amount and due date"
    suggested_response = "Thank you, I have received the statement and will review it."

    DOMAINS = ("paypal.com", "stripe.com", "wise.com", "revolut.com", "chase.com", "americanexpress.com")
    PHRASES = (
        "invoice",
        "payment received",
        "payment due",
        "receipt",
        "bank statement",
        "account statement",
        "transaction",
        "billing",
        "refund",
        "wire transfer",
        "credit card",
    )
    WORDS = ("tax", "bank", "salary", "payroll")

    def match(self, mail: MailText) -> RuleMatch:
        domain = self.domain_in(mail, self.DOMAINS)
        if domain:
            return RuleMatch(True, f"sender domain {domain}")
        hit = self.contains_any(mail.content, self.PHRASES) or self.has_word(mail.content, self.WORDS)
        if hit:
            return RuleMatch(True, f"finance keyword '{hit}'")
        return RuleMatch(False)


class CareerRule(BaseRule):
    name = "career"
    category = Category.CAREER
    confidence = 0.7
    priority = Priority.MEDIUM
    needs_follow_up = True
    follow_up_suggestion = "Reply about the opportunity or next interview step"
    suggested_response = "Thank you for reaching out about this opportunity. I would be glad to discuss it further."

    # ATS platforms usually show up in the sender domain.
    ATS_DOMAINS = (
        "greenhouse.io",
        "lever.co",
        "myworkday.com",
        "smartrecruiters.com",
        "personio.de",
        "ashbyhq.com",
        "icims.com",
        "recruitee.com",
        "teamtailor.com",
        "jobvite.com",
    )
    PHRASES = (
        "thank you for your application",
        "thank you for applying",
        "your application",
        "job opportunity",
        "job offer",
        "interview",
        "recruiter",
        "recruiting",
        "hiring",
        "position",
        "vacancy",
        "consulting opportunity",
    )
    WORDS = ("job", "jobs", "career", "careers", "cv", "resume")

    def match(self, mail: MailText) -> RuleMatch:
        domain = self.domain_in(mail, self.ATS_DOMAINS)
        if domain:
            return RuleMatch(True, f"applicant tracking sender {domain}")
        hit = self.contains_any(mail.content, self.PHRASES) or self.has_word(mail.content, self.WORDS)
        if hit:
            return RuleMatch(True, f"career keyword '{hit}'")
        return RuleMatch(False)


class SocialRule(BaseRule):
    name = "social"
    category = Category.SOCIAL
    confidence = 0.8
    priority = Priority.LOW

    DOMAINS = (
        "facebookmail.com",
        "facebook.com",
        "linkedin.com",
        "twitter.com",
        "x.com",
        "instagram.com",
        "reddit.com",
        "discord.com",
        "meetup.com",
        "pinterest.com",
    )
    PHRASES = ("friend request", "tagged you", "mentioned you", "new follower", "commented on", "invited you to connect")

    def match(self, mail: MailText) -> RuleMatch:
        domain = self.domain_in(mail, self.DOMAINS)
        if domain:
            return RuleMatch(True, f"social network sender {domain}")
        hit = self.contains_any(mail.content, self.PHRASES)
        if hit:
            return RuleMatch(True, f"social keyword '{hit}'")
        return RuleMatch(False)


class PromotionalRule(BaseRule):
    name = "promotional"
    category = Category.PROMOTIONAL
    confidence = 0.7
    priority = Priority.LOW

    SENDER_MARKERS = ("newsletter", "marketing", "promo", "offers", "deals", "mailchimp", "sendgrid")
    PHRASES = (
        "unsubscribe",
        "% off",
        "discount",
        "limited time",
        "special offer",
        "sale ends",
        "free shipping",
        "coupon",
        "promo code",
        "newsletter",
    )

    def match(self, mail: MailText) -> RuleMatch:
        hit = self.contains_any(mail.sender, self.SENDER_MARKERS)
        if hit:
            return RuleMatch(True, f"marketing sender '{hit}'")
        hit = self.contains_any(mail.content, self.PHRASES)
        if hit:
            return RuleMatch(True, f"promotional keyword '{hit}'")
        return RuleMatch(False)


class NotificationRule(BaseRule):
    name = "notification"
    category = Category.NOTIFICATION
    confidence = 0.7
    priority = Priority.LOW

    SENDER_MARKERS = ("no-reply", "noreply", "donotreply", "do-not-reply", "notifications", "alerts@")
    PHRASES = (
        "notification",
        "verification code",
        "security alert",
        "password reset",
        "your order",
        "has shipped",
        "delivery update",
        "system update",
        "subscription",
        "reminder",
    )

    def match(self, mail: MailText) -> RuleMatch:
        hit = self.contains_any(mail.sender, self.SENDER_MARKERS)
        if hit:
            return RuleMatch(True, f"automated sender '{hit}'")
        hit = self.contains_any(mail.content, self.PHRASES)
        if hit:
            return RuleMatch(True, f"notification keyword '{hit}'")
        return RuleMatch(False)


class WorkRule(BaseRule):
    name = "work"
    category = Category.WORK
    confidence = 0.65
    priority = Priority.MEDIUM
    needs_follow_up = True
    follow_up_suggestion = "Work-related email - review and respond appropriately"
    suggested_response = "Thank you for your email. I'll review the details and get back to you soon."

    PHRASES = (
        "meeting",
        "project",
        "deadline",
        "agenda",
        "proposal",
        "report",
        "contract",
        "quarterly",
        "deliverable",
        "team",
        "client",
    )

    def match(self, mail: MailText) -> RuleMatch:
        hit = self.contains_any(mail.content, self.PHRASES)
        if hit:
            return RuleMatch(True, f"work keyword '{hit}'")
        return RuleMatch(False)


class PersonalRule(BaseRule):
    name = "personal"
    category = Category.PERSONAL
    confidence = 0.6
    priority = Priority.MEDIUM
    needs_follow_up = True
    follow_up_suggestion = "Reply personally when convenient"
    suggested_response = "Thanks for your message, great to hear from you!"

    # Consumer mailbox providers: a person rather than a system is likely writing.
    PERSONAL_DOMAINS = ("gmail.com", "googlemail.com", "yahoo.com", "outlook.com", "hotmail.com", "icloud.com", "proton.me")
    PHRASES = ("family", "birthday", "dinner", "weekend", "vacation", "wedding", "mom", "dad", "love you")

    def match(self, mail: MailText) -> RuleMatch:
        hit = self.contains_any(mail.content, self.PHRASES)
        if hit:
            return RuleMatch(True, f"personal keyword '{hit}'")
        domain = self.domain_in(mail, self.PERSONAL_DOMAINS)
        if domain:
            return RuleMatch(True, f"personal mailbox sender {domain}")
        return RuleMatch(False)


def default_rules() -> List[BaseRule]:
    """Rules in evaluation order; the first match wins."""
    return [
        UrgentRule(),
        FinanceRule(),
        CareerRule(),
        SocialRule(),
        PromotionalRule(),
        NotificationRule(),
        WorkRule(),
        PersonalRule(),
    ]
