from pydantic import BaseModel
from typing import List, Optional
from bs4 import BeautifulSoup

PAYMENT_METHOD_LABELS = {
    'bank': "銀行振込",
    'paypal': "PayPal",
    'jpyc': "JPYC",
}


class EmailAddress(BaseModel):
    address: str
    displayName: Optional[str] = None


class EmailRecipients(BaseModel):
    to: List[EmailAddress]
    bcc: List[EmailAddress] = []

    def getFirst(self):
        if self.to:
            return self.to[0].address
        return None


class EmailContent(BaseModel):
    subject: str
    plainText: str
    html: Optional[str] = None

    @classmethod
    def backing_completed(
        cls,
        name: str,
        backing_id: str,
        backing_date: str,
        item_lines: List[str],
        total_amount: int,
        payment_method: str,
        bank_note: str = "",
    ) -> "EmailContent":
        """支援完了メール"""
        def item_list() -> str:
            return "".join(f"<li>{line}</li>" for line in item_lines)

        html = f"""
        <body style="margin:0;padding:0;font-size:14px;font-family:sans-serif;background-color:#fff;">
            <div class="wrapper" style="margin:0;padding:16px;word-break:break-all;">
                <p><strong>{name}</strong> 様</p>
                <p>この度はご支援いただき、誠にありがとうございます。<br>ご支援の詳細は以下のとおりです。</p>
                <div class="card" style="border:1px solid #e6e6e6;border-radius:4px;padding:24px">
                    <b style="display:block">支援ID</b>
                    <p>{backing_id}</p>
                    <b style="display:block">支援日時</b>
                    <p>{backing_date}</p>
                    <b style="display:block">リターン</b>
                    <ul>{item_list()}</ul>
                    <b style="display:block">お支払い合計</b>
                    <p>{total_amount:,}円</p>
                    <b style="display:block">決済方法</b>
                    <p>{PAYMENT_METHOD_LABELS.get(payment_method, payment_method)}</p>
                </div>
                <p>{bank_note}</p>
                <p style="font-size:12px;color:#787c7b">※このメールはシステムからの自動送信です。</p>
            </div>
        </body>
        """
        soup = BeautifulSoup(html, 'html.parser')
        return cls(
            subject="【支援完了】ご支援ありがとうございます",
            plainText=soup.get_text("\n", strip=True),
            html=str(soup),
        )


class EmailRequest(BaseModel):
    senderAddress: str
    recipients: EmailRecipients
    content: EmailContent
